"""Runner for the NixOS VM integration tests of the service modules."""
