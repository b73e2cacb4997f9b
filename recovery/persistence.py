"""
Store interfaces and adapters for protocols, forms, progress and completions.

The core calls these synchronously and never caches what they return.

Interfaces:
- TaskFormStore: protocol tasks, form definitions, patient form progress
- CompletionRecordSource: per-patient task completion records

Adapters:
- InMemoryStore: dictionaries, for tests and embedding
- JsonFileStore: JSON files under a data directory; progress is written
  append-only (one file per version) for audit trail and restart resilience

Concurrency contract:
- save_patient_form_progress() is a compare-and-swap on version. The
  progress passed in must carry the version it was loaded at; a mismatch
  raises ConflictError and the caller reloads and retries.
"""

import json
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from recovery.contracts import (
    CompletionRecord,
    FormDefinition,
    PatientFormProgress,
    TaskDefinition,
)
from recovery.core.protocol_timeline import ProtocolTimeline
from recovery.errors import ConflictError, InvalidIdentifierError, NotFoundError
from recovery.utils.loaders import (
    completion_records_from_dict,
    completion_records_to_dict,
    form_from_dict,
    progress_from_dict,
    progress_to_dict,
    timeline_from_dict,
    timeline_to_dict,
)

logger = logging.getLogger(__name__)


def _path_component(kind: str, identifier) -> str:
    """
    Return identifier if it is safe as a single path component.

    Raises:
        InvalidIdentifierError: Empty, not a string, ".", "..", or contains
            a path separator or NUL
    """
    if (not isinstance(identifier, str) or identifier in ("", ".", "..")
            or any(char in identifier for char in ("/", "\\", "\x00"))):
        raise InvalidIdentifierError(kind, identifier)
    return identifier


class TaskFormStore(ABC):
    """
    Persistence collaborator consumed by the core.

    Subclasses must implement:
    - load_protocol_tasks(protocol_id) -> List[TaskDefinition]
    - load_form_definition(form_id) -> FormDefinition
    - load_patient_form_progress(patient_id, form_instance_id) -> Optional[PatientFormProgress]
    - save_patient_form_progress(progress) -> PatientFormProgress
    """

    @abstractmethod
    def load_protocol_tasks(self, protocol_id: str) -> List[TaskDefinition]:
        """Tasks of a protocol in authoring order."""
        pass

    @abstractmethod
    def load_form_definition(self, form_id: str) -> FormDefinition:
        """Form definition by id."""
        pass

    @abstractmethod
    def load_patient_form_progress(self, patient_id: str,
                                   form_instance_id: str) -> Optional[PatientFormProgress]:
        """Latest progress, or None before the first interaction."""
        pass

    @abstractmethod
    def save_patient_form_progress(self, progress: PatientFormProgress) -> PatientFormProgress:
        """
        Persist progress.

        Returns:
            The stored copy, with version incremented

        Raises:
            ConflictError: If the stored version differs from progress.version
        """
        pass


class CompletionRecordSource(ABC):
    """External source of task completion facts."""

    @abstractmethod
    def get_completion_records(self, patient_id: str,
                               protocol_id: str) -> Dict[str, CompletionRecord]:
        """task_id -> CompletionRecord for one patient's protocol."""
        pass


class InMemoryStore(TaskFormStore, CompletionRecordSource):
    """
    Dictionary-backed store.

    Keeps every saved progress version, so the audit trail is available
    through progress_history(). A lock serializes saves per process.
    """

    def __init__(self):
        self.protocols: Dict[str, ProtocolTimeline] = {}
        self.forms: Dict[str, FormDefinition] = {}
        self.progress: Dict[Tuple[str, str], List[PatientFormProgress]] = {}
        self.completions: Dict[Tuple[str, str], Dict[str, CompletionRecord]] = {}
        self._lock = threading.Lock()

    # Seeding

    def add_protocol(self, timeline: ProtocolTimeline) -> None:
        self.protocols[timeline.protocol_id] = timeline

    def add_form(self, form: FormDefinition) -> None:
        self.forms[form.id] = form

    def record_completion(self, patient_id: str, protocol_id: str, task_id: str,
                          completed_at: Optional[str] = None) -> None:
        records = self.completions.setdefault((patient_id, protocol_id), {})
        records[task_id] = CompletionRecord(status="completed", completed_at=completed_at)

    # TaskFormStore

    def load_protocol(self, protocol_id: str) -> ProtocolTimeline:
        """Raises NotFoundError if the protocol is unknown"""
        if protocol_id not in self.protocols:
            raise NotFoundError("protocol", protocol_id)
        return self.protocols[protocol_id]

    def load_protocol_tasks(self, protocol_id: str) -> List[TaskDefinition]:
        return list(self.load_protocol(protocol_id).tasks)

    def load_form_definition(self, form_id: str) -> FormDefinition:
        if form_id not in self.forms:
            raise NotFoundError("form", form_id)
        return self.forms[form_id]

    def load_patient_form_progress(self, patient_id: str,
                                   form_instance_id: str) -> Optional[PatientFormProgress]:
        history = self.progress.get((patient_id, form_instance_id))
        return history[-1] if history else None

    def save_patient_form_progress(self, progress: PatientFormProgress) -> PatientFormProgress:
        key = (progress.patient_id, progress.form_instance_id)
        with self._lock:
            history = self.progress.setdefault(key, [])
            stored_version = history[-1].version if history else 0
            if progress.version != stored_version:
                raise ConflictError(progress.patient_id, progress.form_instance_id,
                                    progress.version, stored_version)
            saved = replace(progress, version=stored_version + 1)
            history.append(saved)
        return saved

    def progress_history(self, patient_id: str, form_instance_id: str) -> List[PatientFormProgress]:
        return list(self.progress.get((patient_id, form_instance_id), []))

    # CompletionRecordSource

    def get_completion_records(self, patient_id: str,
                               protocol_id: str) -> Dict[str, CompletionRecord]:
        return dict(self.completions.get((patient_id, protocol_id), {}))


class JsonFileStore(TaskFormStore, CompletionRecordSource):
    """
    JSON file store.

    Layout:
        <base_dir>/protocols/<protocol_id>.json
        <base_dir>/forms/<form_id>.json
        <base_dir>/progress/<patient_id>/<form_instance_id>/
            PROGRESS-<form_instance_id>_V-001.json
            PROGRESS-<form_instance_id>_V-002.json
            ...
        <base_dir>/completions/<patient_id>/<protocol_id>.json

    Design:
    - Progress is append-only (never overwrite), one file per version
    - Files are created exclusively, so of two writers racing for the same
      version exactly one wins and the other gets ConflictError
    - Protocols and forms are read on every call (no cache)
    - Every id becomes exactly one path component; anything else raises
      InvalidIdentifierError before the filesystem is touched
    """

    def __init__(self, base_dir: str = "data"):
        """
        Initialize file store.

        Args:
            base_dir: Data directory
        """
        self.base_dir = Path(base_dir)
        self.progress_dir = self.base_dir / "progress"
        self.completions_dir = self.base_dir / "completions"
        logger.info(f"JsonFileStore initialized: {self.base_dir}")

    def _read_json(self, path: Path):
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)

    def _definition_path(self, folder: str, kind: str, identifier: str) -> Path:
        return self.base_dir / folder / f"{_path_component(kind, identifier)}.json"

    # TaskFormStore

    def load_protocol(self, protocol_id: str) -> ProtocolTimeline:
        """
        Raises:
            NotFoundError: If the protocol file does not exist
            InvalidIdentifierError: If protocol_id is not a plain file name
        """
        path = self._definition_path("protocols", "protocol id", protocol_id)
        try:
            data = self._read_json(path)
        except FileNotFoundError:
            raise NotFoundError("protocol", protocol_id) from None
        return timeline_from_dict(data)

    def save_protocol(self, timeline: ProtocolTimeline) -> None:
        """Write an authored timeline (overwrites the protocol file)"""
        path = self._definition_path("protocols", "protocol id", timeline.protocol_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(timeline_to_dict(timeline), f, indent=2, ensure_ascii=False)
        logger.info(f"Saved protocol {timeline.protocol_id} version {timeline.version}")

    def load_protocol_tasks(self, protocol_id: str) -> List[TaskDefinition]:
        return list(self.load_protocol(protocol_id).tasks)

    def load_form_definition(self, form_id: str) -> FormDefinition:
        """
        Raises:
            NotFoundError: If the form file does not exist
            InvalidIdentifierError: If form_id is not a plain file name
        """
        path = self._definition_path("forms", "form id", form_id)
        try:
            data = self._read_json(path)
        except FileNotFoundError:
            raise NotFoundError("form", form_id) from None
        return form_from_dict(data)

    def _instance_dir(self, patient_id: str, form_instance_id: str) -> Path:
        return (self.progress_dir
                / _path_component("patient id", patient_id)
                / _path_component("form instance id", form_instance_id))

    def _version_path(self, patient_id: str, form_instance_id: str, version: int) -> Path:
        filename = f"PROGRESS-{form_instance_id}_V-{version:03d}.json"
        return self._instance_dir(patient_id, form_instance_id) / filename

    def _latest_version(self, patient_id: str, form_instance_id: str) -> int:
        instance_dir = self._instance_dir(patient_id, form_instance_id)
        if not instance_dir.exists():
            return 0
        # Matched by prefix, not glob: instance ids may contain [ ] * ?
        prefix = f"PROGRESS-{form_instance_id}_V-"
        versions = []
        for path in instance_dir.iterdir():
            name = path.name
            if name.startswith(prefix) and name.endswith(".json"):
                number = name[len(prefix):-len(".json")]
                if number.isdigit():
                    versions.append(int(number))
        return max(versions, default=0)

    def load_patient_form_progress(self, patient_id: str,
                                   form_instance_id: str) -> Optional[PatientFormProgress]:
        latest = self._latest_version(patient_id, form_instance_id)
        if latest == 0:
            return None

        path = self._version_path(patient_id, form_instance_id, latest)
        logger.debug(f"Loading progress {path.name}")
        return progress_from_dict(self._read_json(path))

    def save_patient_form_progress(self, progress: PatientFormProgress) -> PatientFormProgress:
        patient_id, instance_id = progress.patient_id, progress.form_instance_id

        stored_version = self._latest_version(patient_id, instance_id)
        if progress.version != stored_version:
            raise ConflictError(patient_id, instance_id, progress.version, stored_version)

        saved = replace(progress, version=stored_version + 1)
        path = self._version_path(patient_id, instance_id, saved.version)
        path.parent.mkdir(parents=True, exist_ok=True)

        try:
            # 'x' = exclusive create; a concurrent writer already took this version
            with open(path, 'x', encoding='utf-8') as f:
                json.dump(progress_to_dict(saved), f, indent=2, ensure_ascii=False)
        except FileExistsError:
            logger.warning(f"Concurrent save detected for {path.name}")
            raise ConflictError(patient_id, instance_id, progress.version,
                                progress.version + 1) from None

        logger.info(f"Saved progress version {saved.version} for {patient_id}/{instance_id}")
        return saved

    def progress_history(self, patient_id: str, form_instance_id: str) -> List[PatientFormProgress]:
        """Every saved version, oldest first"""
        latest = self._latest_version(patient_id, form_instance_id)
        return [
            progress_from_dict(self._read_json(self._version_path(patient_id, form_instance_id, v)))
            for v in range(1, latest + 1)
        ]

    # CompletionRecordSource

    def _completions_path(self, patient_id: str, protocol_id: str) -> Path:
        return (self.completions_dir
                / _path_component("patient id", patient_id)
                / f"{_path_component('protocol id', protocol_id)}.json")

    def get_completion_records(self, patient_id: str,
                               protocol_id: str) -> Dict[str, CompletionRecord]:
        path = self._completions_path(patient_id, protocol_id)
        if not path.exists():
            return {}
        return completion_records_from_dict(self._read_json(path))

    def record_completion(self, patient_id: str, protocol_id: str, task_id: str,
                          completed_at: Optional[str] = None) -> None:
        """Mark a protocol task completed for a patient"""
        records = self.get_completion_records(patient_id, protocol_id)
        records[task_id] = CompletionRecord(status="completed", completed_at=completed_at)

        path = self._completions_path(patient_id, protocol_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(completion_records_to_dict(records), f, indent=2, ensure_ascii=False)

        logger.info(f"Recorded completion of task {task_id} for {patient_id} ({protocol_id})")
