"""Browser-control service: session, commands, streaming and the WebSocket front."""
