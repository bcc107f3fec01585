"""
File-based storage for tb3 data.

Layout of the data directory ($TB3_HOME, default ~/.tb3):

    profile.json          user settings and plate inventories
    program.json          active program (absent when none)
    schedule.json         last compiled schedule
    active_session.json   live session, rewritten on every change
    max_tests.jsonl       max test history, one record per line
    sessions.jsonl        session logs, one record per line

Also provides the two hooks used by an external sync collaborator:
local_changes_since() and apply_remote_changes().
"""

import json
import logging
import shutil
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, TypeVar

from ..core.config_loader import get_data_dir
from ..core.models import (
    ActiveProgram,
    ActiveSessionState,
    AppState,
    ComputedSchedule,
    MaxTest,
    SessionLog,
    UserProfile,
)
from .serializers import (
    ValidationError,
    active_program_to_dict,
    active_session_to_dict,
    computed_schedule_to_dict,
    dict_to_active_program,
    dict_to_active_session,
    dict_to_computed_schedule,
    dict_to_max_test,
    dict_to_session_log,
    dict_to_user_profile,
    from_json_line,
    max_test_to_dict,
    session_log_to_dict,
    to_json_line,
    user_profile_to_dict,
    validate_app_data,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DataStore:
    """
    Manages tb3 data stored as JSON and JSONL files in one directory.

    Singletons (profile, program, schedule, active session) are whole-file
    JSON documents; histories are append-only JSONL.
    """

    def __init__(self, base_dir: str | Path):
        """
        Initialize the store.

        Args:
            base_dir: Directory holding the data files
        """
        self.base_dir = Path(base_dir)
        self.profile_path = self.base_dir / "profile.json"
        self.program_path = self.base_dir / "program.json"
        self.schedule_path = self.base_dir / "schedule.json"
        self.active_session_path = self.base_dir / "active_session.json"
        self.max_tests_path = self.base_dir / "max_tests.jsonl"
        self.sessions_path = self.base_dir / "sessions.jsonl"

    def exists(self) -> bool:
        """Check if the store has been initialized."""
        return self.profile_path.exists()

    def init(self, profile: UserProfile | None = None) -> None:
        """
        Create the data directory and empty files if they don't exist.

        Args:
            profile: Initial profile (defaults when omitted); an existing
                profile.json is kept
        """
        self.base_dir.mkdir(parents=True, exist_ok=True)
        if not self.profile_path.exists():
            self.save_profile(profile or UserProfile())
        for path in (self.max_tests_path, self.sessions_path):
            if not path.exists():
                path.touch()

    # ------------------------------------------------------------------
    # JSON helpers
    # ------------------------------------------------------------------

    def _read_json(self, path: Path) -> dict[str, Any] | None:
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Error parsing {path}: {e}") from e
        if not isinstance(data, dict):
            raise ValidationError(f"Error parsing {path}: expected a JSON object")
        return data

    def _write_json(self, path: Path, data: dict[str, Any]) -> None:
        """Write atomically: a crash mid-write leaves the previous file intact."""
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        tmp.replace(path)

    def _read_lines(self, path: Path, build: Callable[[dict[str, Any]], T]) -> list[T]:
        if not path.exists():
            return []
        records: list[T] = []
        with open(path, "r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    records.append(build(from_json_line(line)))
                except ValidationError as e:
                    raise ValidationError(f"Error parsing line {line_num} in {path}: {e}") from e
        return records

    def _read_raw_lines(self, path: Path) -> list[dict[str, Any]]:
        return self._read_lines(path, lambda d: d)

    def _append_line(self, path: Path, data: dict[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write(to_json_line(data) + "\n")

    def _write_lines(self, path: Path, records: list[dict[str, Any]]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            for record in records:
                f.write(to_json_line(record) + "\n")
        tmp.replace(path)

    # ------------------------------------------------------------------
    # Singletons
    # ------------------------------------------------------------------

    def load_profile(self) -> UserProfile | None:
        data = self._read_json(self.profile_path)
        return dict_to_user_profile(data) if data is not None else None

    def save_profile(self, profile: UserProfile) -> None:
        self._write_json(self.profile_path, user_profile_to_dict(profile))

    def load_program(self) -> ActiveProgram | None:
        data = self._read_json(self.program_path)
        return dict_to_active_program(data) if data is not None else None

    def save_program(self, program: ActiveProgram) -> None:
        self._write_json(self.program_path, active_program_to_dict(program))

    def clear_program(self) -> None:
        self.program_path.unlink(missing_ok=True)
        self.schedule_path.unlink(missing_ok=True)

    def load_schedule(self) -> ComputedSchedule | None:
        """Load the cached schedule; an unreadable cache is treated as absent."""
        try:
            data = self._read_json(self.schedule_path)
            return dict_to_computed_schedule(data) if data is not None else None
        except ValidationError as e:
            logger.warning("Ignoring unreadable schedule cache: %s", e)
            return None

    def save_schedule(self, schedule: ComputedSchedule) -> None:
        self._write_json(self.schedule_path, computed_schedule_to_dict(schedule))

    def load_active_session(self) -> ActiveSessionState | None:
        data = self._read_json(self.active_session_path)
        return dict_to_active_session(data) if data is not None else None

    def save_active_session(self, session: ActiveSessionState) -> None:
        self._write_json(self.active_session_path, active_session_to_dict(session))

    def clear_active_session(self) -> None:
        self.active_session_path.unlink(missing_ok=True)

    # ------------------------------------------------------------------
    # Histories
    # ------------------------------------------------------------------

    def load_max_tests(self) -> list[MaxTest]:
        """Max tests in insertion order."""
        return self._read_lines(self.max_tests_path, dict_to_max_test)

    def append_max_test(self, test: MaxTest) -> None:
        self._append_line(self.max_tests_path, max_test_to_dict(test))

    def load_session_logs(self) -> list[SessionLog]:
        return self._read_lines(self.sessions_path, dict_to_session_log)

    def append_session_log(self, log: SessionLog) -> None:
        self._append_line(self.sessions_path, session_log_to_dict(log))

    # ------------------------------------------------------------------
    # Whole state
    # ------------------------------------------------------------------

    def load_app_state(self) -> AppState:
        """
        Load everything into one AppState.

        An unknown template in program.json resets the program (logged);
        other consistency problems are logged and the data kept.

        Raises:
            FileNotFoundError: If the store has not been initialized
            ValidationError: If a file is corrupt
        """
        if not self.exists():
            raise FileNotFoundError(f"Profile not found: {self.profile_path}. Run 'init' first.")

        raw_program = self._read_json(self.program_path)
        report = validate_app_data(
            {
                "program": raw_program,
                "max_tests": self._read_raw_lines(self.max_tests_path),
                "session_history": self._read_raw_lines(self.sessions_path),
            }
        )
        for message in report.errors:
            logger.warning("Data check (%s): %s", report.severity, message)

        program = None
        if raw_program is not None and report.severity != "recoverable":
            program = dict_to_active_program(raw_program)

        return AppState(
            profile=self.load_profile(),
            program=program,
            schedule=self.load_schedule() if program is not None else None,
            active_session=self.load_active_session(),
            session_history=tuple(self.load_session_logs()),
            max_tests=tuple(self.load_max_tests()),
        )

    def save_app_state(self, state: AppState) -> None:
        """
        Persist an AppState.

        Singletons are rewritten; history records not yet on disk are
        appended (matched by id).
        """
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.save_profile(state.profile)

        if state.program is None:
            self.clear_program()
        else:
            self.save_program(state.program)
            if state.schedule is not None:
                self.save_schedule(state.schedule)

        if state.active_session is None:
            self.clear_active_session()
        else:
            self.save_active_session(state.active_session)

        known_tests = {d.get("id") for d in self._read_raw_lines(self.max_tests_path)}
        for test in state.max_tests:
            if test.id not in known_tests:
                self.append_max_test(test)

        known_logs = {d.get("id") for d in self._read_raw_lines(self.sessions_path)}
        for log in state.session_history:
            if log.id not in known_logs:
                self.append_session_log(log)

    def wipe(self) -> None:
        """Delete all data (dangerous - use with caution)."""
        if self.base_dir.exists():
            shutil.rmtree(self.base_dir)

    # ------------------------------------------------------------------
    # Sync collaborator hooks
    # ------------------------------------------------------------------

    def local_changes_since(self, since: datetime | None) -> dict[str, Any]:
        """
        Whole records modified after ``since`` (everything when None).

        Returns:
            {"profile": dict|None, "program": dict|None,
             "max_tests": [dict], "session_logs": [dict]}
        """

        def changed(record: dict[str, Any] | None) -> bool:
            if record is None:
                return False
            if since is None:
                return True
            stamp = record.get("last_modified")
            return stamp is not None and datetime.fromisoformat(stamp) > since

        profile = self._read_json(self.profile_path)
        program = self._read_json(self.program_path)
        return {
            "profile": profile if changed(profile) else None,
            "program": program if changed(program) else None,
            "max_tests": [d for d in self._read_raw_lines(self.max_tests_path) if changed(d)],
            "session_logs": [d for d in self._read_raw_lines(self.sessions_path) if changed(d)],
        }

    def apply_remote_changes(self, payload: dict[str, Any]) -> None:
        """
        Store records received from the sync collaborator.

        Singletons replace the local copy; history records are upserted by
        id.  No merge policy is applied here.

        Raises:
            ValidationError: If any record is malformed (nothing is written)
        """
        profile = payload.get("profile")
        program = payload.get("program")
        tests = [max_test_to_dict(dict_to_max_test(d)) for d in payload.get("max_tests") or ()]
        logs = [session_log_to_dict(dict_to_session_log(d)) for d in payload.get("session_logs") or ()]
        if profile is not None:
            profile = user_profile_to_dict(dict_to_user_profile(profile))
        if program is not None:
            program = active_program_to_dict(dict_to_active_program(program))

        if profile is not None:
            self._write_json(self.profile_path, profile)
        if program is not None:
            self._write_json(self.program_path, program)
            self.schedule_path.unlink(missing_ok=True)
        if tests:
            self._write_lines(self.max_tests_path, _upsert(self._read_raw_lines(self.max_tests_path), tests))
        if logs:
            self._write_lines(self.sessions_path, _upsert(self._read_raw_lines(self.sessions_path), logs))
        logger.info(
            "Applied remote changes: %d max tests, %d session logs%s%s",
            len(tests),
            len(logs),
            ", profile" if profile is not None else "",
            ", program" if program is not None else "",
        )


def _upsert(existing: list[dict[str, Any]], incoming: list[dict[str, Any]]) -> list[dict[str, Any]]:
    by_id = {d.get("id"): i for i, d in enumerate(existing)}
    merged = list(existing)
    for record in incoming:
        idx = by_id.get(record["id"])
        if idx is None:
            by_id[record["id"]] = len(merged)
            merged.append(record)
        else:
            merged[idx] = record
    return merged


def get_default_store() -> DataStore:
    """
    Get a DataStore rooted at the default data directory.

    Returns:
        DataStore instance
    """
    return DataStore(get_data_dir())
