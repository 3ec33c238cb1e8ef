"""Backend pipeline that turns office documents into whiteboard rasters.

This package intentionally keeps FastAPI route handlers thin:
- encryption pre-check on raw PDF bytes
- sandboxed profile + environment for the headless renderer
- renderer invocation, output discovery and failure classification

Security note:
The rendering engine is an untrusted external binary. It only ever sees a
private HOME/XDG tree under the storage root, never the server user's own
configuration, and filenames coming from clients are validated before they are
joined onto the uploads directory.
"""
