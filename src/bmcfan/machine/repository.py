"""
Machine Store Module

File-backed storage of machine configurations, keyed by machine ID. The
whole store is loaded at startup and rewritten on every mutation. Changes
written by another process are picked up with ``reload_if_changed``.
"""

import json
import logging
import os
import threading
from typing import Dict, List, Optional, Tuple

import yaml

from .models import Machine

logger = logging.getLogger(__name__)


class NotFoundError(LookupError):
    """Raised when a machine or preset does not exist"""
    pass


class MachineRepository:
    """Stores machines in a JSON file"""

    def __init__(self, path: str = "machines.json"):
        """Initialize the repository

        Args:
            path: Path of the JSON store, created with an empty list if missing
        """
        self.path = path
        self._machines: Dict[str, Machine] = {}
        self._signature: Optional[Tuple[int, int]] = None
        self._lock = threading.Lock()

    def _file_signature(self) -> Optional[Tuple[int, int]]:
        try:
            stat = os.stat(self.path)
        except OSError:
            return None
        return stat.st_mtime_ns, stat.st_size

    def load(self) -> List[Machine]:
        """Load all machines from the store file

        Returns:
            All stored machines

        Raises:
            ValueError: If the store file does not hold a list of machines
        """
        with self._lock:
            if not os.path.exists(self.path):
                directory = os.path.dirname(self.path)
                if directory:
                    os.makedirs(directory, exist_ok=True)
                with open(self.path, "w") as f:
                    f.write("[]")
                logger.info(f"Created empty machine store at {self.path}")

            signature = self._file_signature()

            # JSON is read with the YAML loader so hand-edited stores may use either
            with open(self.path) as f:
                records = yaml.safe_load(f) or []

            if not isinstance(records, list):
                raise ValueError(f"Machine store {self.path} must contain a list")

            machines = {}
            for record in records:
                machine = Machine.from_dict(record)
                machines[machine.id] = machine

            self._machines = machines
            self._signature = signature

            logger.info(f"Loaded {len(self._machines)} machines from {self.path}")
            return list(self._machines.values())

    def reload_if_changed(self) -> bool:
        """Reload the store if the file changed since it was last read or written

        Returns:
            True if the store was reloaded

        Raises:
            ValueError: If the changed file does not hold a list of machines
        """
        signature = self._file_signature()
        if signature is None or signature == self._signature:
            return False
        logger.info(f"Machine store {self.path} changed on disk, reloading")
        self.load()
        return True

    def _persist(self) -> None:
        data = json.dumps([m.to_dict() for m in self._machines.values()], indent=2)
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w") as f:
            f.write(data)
        os.replace(tmp_path, self.path)
        self._signature = self._file_signature()

    def save(self, machine: Machine) -> Machine:
        """Insert or replace a machine and flush the store

        The in-memory store only changes once the file was written.

        Args:
            machine: Machine to store

        Returns:
            The stored machine
        """
        with self._lock:
            previous = self._machines.get(machine.id)
            self._machines[machine.id] = machine
            try:
                self._persist()
            except OSError:
                if previous is None:
                    del self._machines[machine.id]
                else:
                    self._machines[machine.id] = previous
                raise
        logger.debug(f"Saved machine {machine.name} ({machine.id})")
        return machine

    def find_by_id(self, machine_id: str) -> Optional[Machine]:
        """Get a machine by ID, or None if it does not exist"""
        return self._machines.get(machine_id)

    def get(self, machine_id: str) -> Machine:
        """Get a machine by ID

        Raises:
            NotFoundError: If the machine does not exist
        """
        machine = self.find_by_id(machine_id)
        if machine is None:
            raise NotFoundError(f"Machine {machine_id} not found")
        return machine

    def find_all(self) -> List[Machine]:
        return list(self._machines.values())

    def find_enabled(self) -> List[Machine]:
        return [m for m in self._machines.values() if m.enabled]
