"""termium-serve - command-line entry point for the browser-control server."""
