"""wfsharvest command line interface."""
