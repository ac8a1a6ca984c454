"""Export JSON schemas for the document update channel contract."""

import json
from pathlib import Path

from backend.chatbot.models import Chat, DataStreamEvent, Document, UpdateDocumentResult


def main() -> None:
    """Export schemas to docs/schemas/."""
    schemas_dir = Path("docs/schemas")
    schemas_dir.mkdir(parents=True, exist_ok=True)

    for model in (DataStreamEvent, UpdateDocumentResult, Document, Chat):
        schema_path = schemas_dir / f"{model.__name__}.schema.json"
        with open(schema_path, "w") as f:
            json.dump(model.model_json_schema(), f, indent=2)
        print(f"Exported {model.__name__} schema to {schema_path}")


if __name__ == "__main__":
    main()
