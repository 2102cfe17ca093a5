"""Database and retention-policy preparation run before a migration."""

from __future__ import annotations

import logging
from typing import Callable, Iterable, List, Optional

import requests

from .archive import retention_durations
from .config.schema import MigrationSettings
from .durations import retention_policy_name
from .errors import AdminError
from .pipeline import discover_files

logger = logging.getLogger(__name__)


class Administrator:
    """Issue the InfluxQL statements preparing the target database."""

    def __init__(
        self,
        settings: MigrationSettings,
        *,
        session: Optional[requests.Session] = None,
        prompt: Callable[[str], str] = input,
        durations: Callable[[Iterable[str]], Iterable[int]] = retention_durations,
        timeout_s: float = 30.0,
    ) -> None:
        self.settings = settings
        self.session = session or requests.Session()
        self._prompt = prompt
        self._durations = durations
        self.timeout = timeout_s

    def prepare(self, root: str) -> Optional[List[str]]:
        """Create the database and one policy per archive retention.

        Returns the created policy names, or ``None`` when preparation is
        disabled in the configuration.
        """

        if not self.settings.create_database_and_policies:
            return None
        self.create_database()
        paths = discover_files(root, self.settings.archive_suffix)
        return self.create_retention_policies(paths)

    def create_database(self) -> None:
        database = self.settings.database
        self._confirm(f'Create database "{database}" if it does not exist?')
        self.query(f'CREATE DATABASE "{database}"')
        logger.info("Database %s created.", database)

    def create_retention_policies(self, paths: Iterable[str]) -> List[str]:
        seconds = sorted(set(self._durations(paths)))
        names: List[str] = []
        for value in seconds:
            name = retention_policy_name(value)
            if name not in names:
                names.append(name)

        database = self.settings.database
        replication = self.settings.replication_factor
        if names:
            self._confirm(
                f'The following retention policies will be created for database "{database}": '
                f"{', '.join(names)}. Continue?"
            )
        for name in names:
            self.query(
                f'CREATE RETENTION POLICY "{name}" ON "{database}" '
                f"DURATION {name} REPLICATION {replication}"
            )
        if names:
            logger.info("Retention policies %s created.", names)

        default_rp = self.settings.default_retention_policy
        default_duration = self.settings.default_duration
        if default_rp and default_duration:
            verb = "ALTER" if default_rp in names else "CREATE"
            self.query(
                f'{verb} RETENTION POLICY "{default_rp}" ON "{database}" '
                f"DURATION {default_duration} REPLICATION {replication} DEFAULT"
            )
            logger.info('Default retention policy "%s" set.', default_rp)
            if default_rp not in names:
                names.append(default_rp)
        return names

    def query(self, command: str) -> dict:
        url = f"{self.settings.host}/query"
        logger.debug("InfluxQL: %s", command)
        try:
            response = self.session.post(url, data={"q": command}, timeout=self.timeout)
        except requests.RequestException as exc:
            raise AdminError(f"query {command!r} failed: {exc}") from exc
        if response.status_code >= 300:
            raise AdminError(f"query {command!r} failed with HTTP {response.status_code}: {response.text}")
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        error = payload.get("error")
        if not error:
            for result in payload.get("results", []):
                error = result.get("error")
                if error:
                    break
        if error:
            raise AdminError(f"query {command!r} rejected: {error}")
        return payload

    def _confirm(self, message: str) -> None:
        if not self.settings.interactive:
            return
        answer = self._prompt(f"{message} [y/N]: ")
        if answer.strip().lower() not in {"y", "yes"}:
            raise AdminError("aborted by user")

    def close(self) -> None:
        self.session.close()
