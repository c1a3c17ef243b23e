"""CLI subcommands registered on the fhircache app."""
