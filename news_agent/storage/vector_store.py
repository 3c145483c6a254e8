"""
Vector Store with FAISS

Id-keyed vector store on top of FAISS. Records are addressed by a string id;
upserting an existing id replaces its vector and metadata instead of adding
a duplicate. Metadata lives in a pickled sidecar next to the index file.

Several processes may share one index path (HTTP server, Kafka listener, CLI).
Each store reloads the files when another writer has saved since its last
load, and persisting upserts reload, write and save as one locked step.
"""

import os
import pickle
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import faiss
import numpy as np

logger = logging.getLogger(__name__)


@dataclass
class IndexedVector:
    """A vector record as written to the store."""
    id: str
    values: Sequence[float]
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class QueryMatch:
    """A nearest-neighbour hit. Score is the L2 distance (lower = more similar)."""
    id: str
    score: float
    metadata: Optional[Dict[str, Any]] = None


class VectorStore:
    """
    FAISS vector store with upsert semantics.

    Uses IndexIDMap2 over an exact IndexFlatL2 so individual records can be
    removed and replaced. String ids are mapped to int64 FAISS keys.
    """

    def __init__(
        self,
        index_path: Optional[str] = None,
        dimension: int = 768,
        load_existing: bool = True
    ):
        """
        Initialize the vector store.

        Args:
            index_path: Path to save/load the FAISS index (None = in-memory only)
            dimension: Dimension of embedding vectors
            load_existing: Load the index at index_path if it exists
        """
        self.index_path = index_path
        self.dimension = dimension

        self.index = None
        self._keys: Dict[str, int] = {}
        self._records: Dict[int, Dict[str, Any]] = {}
        self._next_key = 0
        self._lock = threading.RLock()
        # Version of the files last loaded or saved, and whether memory holds unsaved writes
        self._disk_version: Optional[Tuple[int, int, int]] = None
        self._dirty = False
        self._initialize_index()

        if index_path:
            directory = os.path.dirname(index_path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            if load_existing and os.path.exists(index_path):
                self.load_index()

    def _initialize_index(self) -> None:
        """Initialize a new, empty index."""
        self.index = faiss.IndexIDMap2(faiss.IndexFlatL2(self.dimension))
        self._keys = {}
        self._records = {}
        self._next_key = 0
        self._dirty = False

    @staticmethod
    def _file_version(path: str) -> Optional[Tuple[int, int, int]]:
        try:
            stat = os.stat(path)
        except OSError:
            return None
        return (stat.st_ino, stat.st_mtime_ns, stat.st_size)

    def _as_vector(self, values: Sequence[float]) -> np.ndarray:
        vector = np.asarray(values, dtype=np.float32).reshape(1, -1)
        if vector.shape[1] != self.dimension:
            raise ValueError(
                f"Embedding dimension ({vector.shape[1]}) must match "
                f"index dimension ({self.dimension})"
            )
        return vector

    def refresh(self) -> bool:
        """
        Reload the index if another writer saved it since the last load or save.

        A store holding unsaved writes is not reloaded, so they are never
        discarded. A half-written pair of files is skipped and retried on the
        next call.

        Returns:
            True if the in-memory index was replaced
        """
        if not self.index_path:
            return False

        with self._lock:
            if self._dirty:
                return False
            version = self._file_version(self.index_path + '.metadata')
            if version is None or version == self._disk_version:
                return False
            return self._load(self.index_path, reset_on_error=False)

    def upsert(self, records: List[IndexedVector], persist: bool = False) -> int:
        """
        Insert or overwrite records by id.

        Args:
            records: Vectors to write
            persist: Save to index_path in the same locked step, after picking up
                records other writers saved

        Returns:
            Number of records written

        Raises:
            ValueError: If a record id is empty or its dimension is wrong
        """
        if not records:
            return 0

        with self._lock:
            self.refresh()

            # Validate everything first so a bad record leaves the index untouched
            vectors = []
            for record in records:
                if not record.id:
                    raise ValueError("Record id cannot be empty")
                vectors.append(self._as_vector(record.values))

            for record, vector in zip(records, vectors):
                key = self._keys.get(record.id)
                if key is not None:
                    self.index.remove_ids(np.array([key], dtype=np.int64))
                else:
                    key = self._next_key
                    self._next_key += 1
                    self._keys[record.id] = key

                self.index.add_with_ids(vector, np.array([key], dtype=np.int64))
                self._records[key] = {'id': record.id, 'metadata': dict(record.metadata)}

            assert self.index.ntotal == len(self._records), \
                "CRITICAL: Metadata out of sync with index"

            self._dirty = True
            if persist and self.index_path:
                self.save_index()

            return len(records)

    def query(
        self,
        vector: Sequence[float],
        top_k: int = 3,
        include_metadata: bool = True
    ) -> List[QueryMatch]:
        """
        Find the nearest records to a query vector.

        Args:
            vector: Query embedding
            top_k: Maximum number of matches
            include_metadata: Attach each record's metadata to its match

        Returns:
            Matches ordered by ascending distance, at most top_k

        Raises:
            ValueError: If top_k is negative or the dimension is wrong
        """
        if top_k < 0:
            raise ValueError(f"top_k must be non-negative, got {top_k}")

        with self._lock:
            self.refresh()
            query_vector = self._as_vector(vector)

            if top_k == 0 or self.index.ntotal == 0:
                return []

            actual_k = min(top_k, self.index.ntotal)
            distances, keys = self.index.search(query_vector, actual_k)

            matches = []
            for dist, key in zip(distances[0], keys[0]):
                record = self._records.get(int(key))
                if record is None:
                    continue
                matches.append(QueryMatch(
                    id=record['id'],
                    score=float(dist),
                    metadata=dict(record['metadata']) if include_metadata else None
                ))
            return matches

    def fetch(self, record_id: str) -> Optional[IndexedVector]:
        """
        Fetch a stored record by id.

        Returns:
            The record, or None if the id is unknown
        """
        with self._lock:
            self.refresh()
            key = self._keys.get(record_id)
            if key is None:
                return None
            values = self.index.reconstruct(key)
            return IndexedVector(
                id=record_id,
                values=values.tolist(),
                metadata=dict(self._records[key]['metadata'])
            )

    def delete(self, record_id: str) -> bool:
        """Remove a record. Returns False if the id is unknown."""
        with self._lock:
            self.refresh()
            key = self._keys.pop(record_id, None)
            if key is None:
                return False
            self.index.remove_ids(np.array([key], dtype=np.int64))
            del self._records[key]
            self._dirty = True
            return True

    def save_index(self, path: Optional[str] = None) -> None:
        """
        Save FAISS index and metadata to disk with atomic writes.

        The index file is replaced before the metadata sidecar; readers use the
        sidecar's version to detect a new save.

        Args:
            path: Path to save index (default: self.index_path)
        """
        save_path = path or self.index_path
        if not save_path:
            raise ValueError("No index path configured")

        directory = os.path.dirname(save_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        metadata_path = save_path + '.metadata'
        temp_index_path = save_path + '.tmp'
        temp_metadata_path = metadata_path + '.tmp'

        with self._lock:
            state = {
                'keys': self._keys,
                'records': self._records,
                'next_key': self._next_key,
            }

            try:
                faiss.write_index(self.index, temp_index_path)
                os.replace(temp_index_path, save_path)

                with open(temp_metadata_path, 'wb') as f:
                    pickle.dump(state, f, protocol=pickle.HIGHEST_PROTOCOL)
                # rename keeps inode and mtime
                version = self._file_version(temp_metadata_path)
                os.replace(temp_metadata_path, metadata_path)

            except Exception:
                for temp_path in (temp_index_path, temp_metadata_path):
                    if os.path.exists(temp_path):
                        os.remove(temp_path)
                raise

            if save_path == self.index_path:
                self._disk_version = version
                self._dirty = False

    def load_index(self, path: Optional[str] = None) -> bool:
        """
        Load FAISS index and metadata from disk.

        Args:
            path: Path to load index from (default: self.index_path)

        Returns:
            True if successful, False otherwise (the store is then empty)
        """
        load_path = path or self.index_path
        if not load_path or not os.path.exists(load_path):
            return False

        with self._lock:
            return self._load(load_path, reset_on_error=True)

    def _load(self, load_path: str, reset_on_error: bool) -> bool:
        metadata_path = load_path + '.metadata'
        # Taken before reading so a save that lands mid-read is picked up next time
        version = self._file_version(metadata_path)

        try:
            loaded_index = faiss.read_index(load_path)

            if os.path.exists(metadata_path):
                with open(metadata_path, 'rb') as f:
                    state = pickle.load(f)
            else:
                state = {'keys': {}, 'records': {}, 'next_key': 0}

            if loaded_index.ntotal != len(state['records']):
                raise ValueError(
                    f"Index has {loaded_index.ntotal} vectors but "
                    f"metadata has {len(state['records'])} entries"
                )

        except Exception as e:
            if reset_on_error:
                logger.error(f"Failed to load vector index from {load_path}: {e}")
                self._initialize_index()
            else:
                logger.warning(f"Skipped reloading vector index from {load_path}: {e}")
            return False

        self.index = loaded_index
        self.dimension = loaded_index.d
        self._keys = state['keys']
        self._records = state['records']
        self._next_key = state['next_key']
        self._dirty = False
        if load_path == self.index_path:
            self._disk_version = version

        logger.info(f"Loaded vector index from {load_path} ({self.index.ntotal} records)")
        return True

    def clear(self) -> None:
        """Clear all vectors and metadata, resetting to empty state."""
        with self._lock:
            self._initialize_index()

    def count(self) -> int:
        """Get the total number of records in the index."""
        with self._lock:
            self.refresh()
            return self.index.ntotal

    def get_stats(self) -> Dict:
        """Get statistics about the vector store."""
        total = self.count()
        return {
            'total_vectors': total,
            'dimension': self.dimension,
            'metadata_count': len(self._records),
            'index_type': 'IndexIDMap2(IndexFlatL2)',
            'index_path': self.index_path,
        }

    def __repr__(self) -> str:
        return f"VectorStore(vectors={self.index.ntotal}, dimension={self.dimension})"
