from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import asdict
from datetime import datetime
import json
import logging
import os
from pathlib import Path
import tempfile

from .corpus import CorpusState
from .errors import ResourceError
from .schema import Chunk, Document, EvaluationQuery, EvaluationRun, IndexEntry

logger = logging.getLogger(__name__)


def _iter_jsonl(path: str | Path) -> Iterator[dict]:
    with Path(path).open("r", encoding="utf-8") as file_handle:
        for line in file_handle:
            if line.strip():
                yield json.loads(line)


def _write_atomic(path: Path, payload: str) -> None:
    """Write `payload` to a sibling temp file, then rename it over `path`."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as file_handle:
            file_handle.write(payload)
            file_handle.flush()
            os.fsync(file_handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def iter_chunks(path: str | Path) -> Iterator[Chunk]:
    for record in _iter_jsonl(path):
        yield Chunk.from_record(record)


def load_chunks(path: str | Path) -> list[Chunk]:
    return list(iter_chunks(path))


def save_chunks(chunks: Iterable[Chunk], path: str | Path) -> None:
    payload = "".join(json.dumps(chunk.to_record(), ensure_ascii=False) + "\n" for chunk in chunks)
    _write_atomic(Path(path), payload)


def load_queries(path: str | Path) -> list[EvaluationQuery]:
    """Load evaluation queries from JSONL (`name`, `query`, `expected_terms`, optional `top_k`)."""
    try:
        return [
            EvaluationQuery(
                name=record["name"],
                query=record["query"],
                expected_terms=list(record.get("expected_terms", [])),
                top_k=record.get("top_k"),
            )
            for record in _iter_jsonl(path)
        ]
    except (OSError, ValueError, KeyError) as exc:
        raise ResourceError(f"cannot read evaluation queries {path}: {exc}") from exc


def load_state(path: str | Path) -> CorpusState:
    """Load a corpus snapshot; a missing file yields an empty corpus."""
    path = Path(path)
    if not path.exists():
        return CorpusState()
    try:
        record = json.loads(path.read_text(encoding="utf-8"))
        return CorpusState(
            documents=[Document(**document) for document in record.get("documents", [])],
            chunks=[Chunk.from_record(chunk) for chunk in record.get("chunks", [])],
            index_entries=[IndexEntry(**entry) for entry in record.get("index_entries", [])],
        )
    except (OSError, ValueError, KeyError, TypeError, AttributeError) as exc:
        raise ResourceError(f"cannot read corpus state {path}: {exc}") from exc


def save_state(state: CorpusState, path: str | Path) -> None:
    record = {
        "documents": [asdict(document) for document in state.documents],
        "chunks": [chunk.to_record() for chunk in state.chunks],
        "index_entries": [asdict(entry) for entry in state.index_entries],
    }
    _write_atomic(Path(path), json.dumps(record, ensure_ascii=False, indent=2))
    logger.debug("Saved corpus state to %s", path)


def write_run(run: EvaluationRun, runs_dir: str | Path) -> Path:
    """Persist one evaluation run under a per-day directory and return its path."""
    timestamp = datetime.fromisoformat(run.timestamp)
    date_dir = Path(runs_dir) / timestamp.strftime("%Y-%m-%d")
    filename = f"run-{timestamp.strftime('%Y%m%dT%H%M%S%fZ')}-{run.embedder}.json"
    path = date_dir / filename.replace("/", "-").replace(":", "-").replace("@", "-")
    _write_atomic(path, json.dumps(asdict(run), indent=2) + "\n")
    logger.info("Logged evaluation run to %s", path)
    return path
