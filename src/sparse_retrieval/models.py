"""Model store for the custom embedder.

Layout: ``<models_dir>/<name>/<version>/manifest.json`` plus the sampled
``training-data.jsonl`` written by :func:`train_model`. The latest version of a
model is its lexicographically greatest subdirectory name.
"""
from __future__ import annotations

from collections import Counter
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
import json
import logging
from pathlib import Path

from .errors import ConfigurationError, ResourceError
from .io_utils import iter_chunks
from .schema import ModelManifest
from .tokenization import tokenize

logger = logging.getLogger(__name__)

MANIFEST_FILE = "manifest.json"
TRAINING_DATA_FILE = "training-data.jsonl"


@dataclass(slots=True)
class TrainResult:
    manifest: ModelManifest
    manifest_path: Path
    training_data: Path


def resolve_model_dir(models_dir: str | Path, name: str, version: str | None = None) -> Path:
    """Return the directory holding one version of a model.

    Args:
        models_dir: Model store root.
        name: Model name.
        version: Explicit version; when omitted the latest version is used.

    Raises:
        ResourceError: If no version directory exists for the model.
    """
    model_root = Path(models_dir) / name
    if version:
        return model_root / version
    versions = sorted(path.name for path in model_root.iterdir() if path.is_dir()) if model_root.is_dir() else []
    if not versions:
        raise ResourceError(f"no versions found for model {name!r} under {model_root}")
    return model_root / versions[-1]


def load_manifest(models_dir: str | Path, name: str, version: str | None = None) -> ModelManifest:
    """Load the manifest of a trained model.

    Raises:
        ConfigurationError: If `name` is empty.
        ResourceError: If the manifest is missing, unreadable or malformed.
    """
    if not name.strip():
        raise ConfigurationError("custom embedder requires a model name")
    manifest_path = resolve_model_dir(models_dir, name, version) / MANIFEST_FILE
    try:
        record = json.loads(manifest_path.read_text(encoding="utf-8"))
        manifest = ModelManifest(
            name=record["name"],
            version=record["version"],
            trained_at=record["trained_at"],
            example_count=int(record["example_count"]),
            token_weights={token: float(weight) for token, weight in record["token_weights"].items()},
        )
    except (OSError, ValueError, KeyError, TypeError, AttributeError) as exc:
        raise ResourceError(f"cannot read model manifest {manifest_path}: {exc}") from exc
    logger.debug("Loaded model %s@%s (%d tokens)", manifest.name, manifest.version, len(manifest.token_weights))
    return manifest


def train_model(
    chunks_file: str | Path,
    models_dir: str | Path,
    name: str,
    version: str | None = None,
    sample_limit: int = 1000,
) -> TrainResult:
    """Build a token-weight table from an exported chunk file.

    Token counts are accumulated over every chunk; the first `sample_limit`
    chunks are also copied to the version's training-data file. Weights are
    each token's share of the total count.

    Args:
        chunks_file: Chunk JSONL export to train from.
        models_dir: Model store root.
        name: Model name.
        version: Explicit version; defaults to a UTC timestamp `vYYYYMMDDTHHMMSS`.
        sample_limit: Maximum number of chunks copied to the training-data file.

    Returns:
        `TrainResult` with the manifest and the paths written.

    Raises:
        ConfigurationError: If `name` is empty.
        ResourceError: If the chunk file is unreadable or holds no chunks.
    """
    if not name.strip():
        raise ConfigurationError("model name must be provided")
    now = datetime.now(timezone.utc)
    version = version or now.strftime("v%Y%m%dT%H%M%S")
    model_dir = Path(models_dir) / name / version
    model_dir.mkdir(parents=True, exist_ok=True)
    training_path = model_dir / TRAINING_DATA_FILE

    counts: Counter[str] = Counter()
    examples = 0
    try:
        with training_path.open("w", encoding="utf-8") as training_handle:
            for chunk in iter_chunks(chunks_file):
                counts.update(tokenize(chunk.text))
                if examples < sample_limit:
                    training_handle.write(json.dumps(chunk.to_record()) + "\n")
                    examples += 1
    except OSError as exc:
        raise ResourceError(f"cannot read chunks file {chunks_file}: {exc}") from exc
    if examples == 0:
        raise ResourceError(f"no chunks read from {chunks_file}")

    total = sum(counts.values())
    weights = {token: count / total for token, count in counts.items()} if total else {}
    manifest = ModelManifest(
        name=name,
        version=version,
        trained_at=now.isoformat(),
        example_count=examples,
        token_weights=weights,
    )
    manifest_path = model_dir / MANIFEST_FILE
    manifest_path.write_text(json.dumps(asdict(manifest), indent=2) + "\n", encoding="utf-8")
    logger.info("Trained model %s@%s from %d examples", name, version, examples)
    return TrainResult(manifest=manifest, manifest_path=manifest_path, training_data=training_path)
