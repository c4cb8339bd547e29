"""filecat core package.

The package is organized into focused modules:

- **persistence**: SQLite-backed file registry and config entry store
- **classifier**: Token model, versioned model repository and the classifier adapter
- **filesystem**: Origin directory listing and file moves
- **batch**: Refresh, force-categorize and move operations over many files
- **jobs**: Background job coordination, progress, cancellation and retention
- **notifications**: Push messages fanned out to webhooks and live clients
- **service**: Application facade used by the HTTP server and the CLI
- **server**: REST API and server-sent notification stream
- **client**: Client-side store, reducers, effects, tagged cache and API client

The main entry point for embedding is ``FileCategorizationService``.
"""

from .service import FileCategorizationService
from .version import __version__

__all__ = [
    "__version__",
    "FileCategorizationService",
]
