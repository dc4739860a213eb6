"""
GitLab repository destination.

Artifacts are committed through the GitLab v4 repository files API. The
configured group and project are created on first use when missing.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import logging
from urllib.parse import quote

import httpx

from routerbackup.backup.config import BackupConfig
from routerbackup.backup.errors import TargetSetupError
from routerbackup.backup.targets.base import VersionedRepository

logger = logging.getLogger(__name__)


def _quote(value: str) -> str:
    return quote(value, safe="")


class GitLabTarget(VersionedRepository):
    """Commits artifacts into a GitLab project."""

    NAME = "gitlab"
    USER_AGENT = "routerbackup/1.0"

    def __init__(
        self,
        config: BackupConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the GitLab target.

        Args:
            config: Backup configuration with gitlab_* settings
            transport: Optional httpx transport (used by tests)
        """
        super().__init__(config)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self.project_id: int | None = None
        self.group_id: int | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=f"{self.config.gitlab_url.rstrip('/')}/api/v4",
                headers={
                    "PRIVATE-TOKEN": self.config.gitlab_token or "",
                    "User-Agent": self.USER_AGENT,
                },
                timeout=self.config.commit_timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # -------------------------------------------------------------------------
    # Group / project setup
    # -------------------------------------------------------------------------

    async def prepare(self) -> None:
        """Ensure the group (if configured) and the project exist."""
        try:
            if self.config.gitlab_group:
                await self._ensure_group(self.config.gitlab_group)
            await self._ensure_project(self.config.gitlab_project or "")
        except httpx.HTTPError as e:
            raise TargetSetupError(f"GitLab setup failed: {e}") from e

        if self.config.gitlab_debug:
            logger.debug(f"Project ID {self.project_id}")
            logger.debug(f"Group ID {self.group_id}")

    async def _ensure_group(self, name: str) -> None:
        response = await self.client.get(f"/groups/{_quote(name)}")
        if response.status_code == 200:
            self.group_id = response.json()["id"]
            return
        if response.status_code != 404:
            response.raise_for_status()

        logger.info(f"Group '{name}' does not exist in repo. Creating new ...")
        response = await self.client.post("/groups", json={"name": name, "path": name})
        if response.status_code not in (200, 201):
            raise TargetSetupError(f"Can not create new group in GitLab: {response.text}")
        self.group_id = response.json()["id"]
        logger.info(f"Group '{name}' has been created successfully.")

    async def _ensure_project(self, name: str) -> None:
        namespace = self.config.gitlab_group or await self._current_username()
        response = await self.client.get(f"/projects/{_quote(f'{namespace}/{name}')}")
        if response.status_code == 200:
            self.project_id = response.json()["id"]
            return
        if response.status_code != 404:
            response.raise_for_status()

        logger.info(f"Project '{name}' does not exist in repo. Creating new ...")
        payload: dict = {"name": name, "path": name}
        if self.group_id is not None:
            payload["namespace_id"] = self.group_id
        response = await self.client.post("/projects", json=payload)
        if response.status_code not in (200, 201):
            raise TargetSetupError(f"Can not create new project in GitLab: {response.text}")
        self.project_id = response.json()["id"]
        logger.info(f"Project '{name}' has been created successfully.")

    async def _current_username(self) -> str:
        response = await self.client.get("/user")
        response.raise_for_status()
        return response.json()["username"]

    # -------------------------------------------------------------------------
    # Files
    # -------------------------------------------------------------------------

    def _file_url(self, path: str) -> str:
        if self.project_id is None:
            raise RuntimeError("GitLab target not prepared")
        return f"/projects/{self.project_id}/repository/files/{_quote(path)}"

    async def file_exists(self, path: str) -> bool:
        response = await self.client.head(
            self._file_url(path), params={"ref": self.config.gitlab_branch}
        )
        if response.status_code == 404:
            return False
        response.raise_for_status()
        return True

    async def put(self, path: str, content: str, message: str, encoding: str = "text") -> None:
        payload = {
            "branch": self.config.gitlab_branch,
            "content": content,
            "commit_message": message,
            "encoding": encoding,
        }
        url = self._file_url(path)
        if await self.file_exists(path):
            response = await self.client.put(url, json=payload)
        else:
            response = await self.client.post(url, json=payload)
        response.raise_for_status()
        logger.debug(f"GitLab commit {path} on {self.config.gitlab_branch}: {message}")
