from nbtest.main import main

raise SystemExit(main())
