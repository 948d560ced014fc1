"""Export the OpenAPI spec from the FastAPI app to a static JSON file.

Usage:
    python -m scripts.export_openapi [output_path]

Defaults to docs/openapi.json if no path is given.
"""

import json
import sys
from pathlib import Path


def main() -> None:
    from pueue_bridge.bridge_api import create_app
    from pueue_bridge.client_backend import PueueClientBackend

    # Schema generation never talks to the daemon, so no config is needed.
    app = create_app(backend=PueueClientBackend(require_config=False))
    spec = app.openapi()
    output = Path(sys.argv[1]) if len(sys.argv) > 1 else Path("docs/openapi.json")
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(json.dumps(spec, indent=2) + "\n", encoding="utf-8")
    print(f"Exported OpenAPI spec to {output} ({output.stat().st_size:,} bytes)")


if __name__ == "__main__":
    main()
