"""Client for the Pandora pipeline (workflow) API."""

import logging
from typing import List
from urllib.parse import quote

from ..schema.models import ExportSpec, RepoSchema, SchemaEntry
from .base import CONTENT_TYPE_TEXT, BaseClient

LOG = logging.getLogger(__name__)

EXPORT_TYPE_TSDB = 'tsdb'
EXPORT_WHENCE = 'oldest'


class PipelineClient(BaseClient):
    """Repo, data and export calls of the pipeline backend."""

    @staticmethod
    def _repo_path(repo: str) -> str:
        return f"/v2/repos/{quote(repo, safe='')}"

    def _export_path(self, repo: str, name: str) -> str:
        return f"{self._repo_path(repo)}/exports/{quote(name, safe='')}"

    def write(self, repo: str, data: bytes) -> None:
        """Post tab separated ``key=value`` records to the repo."""
        self.request('POST', f"{self._repo_path(repo)}/data", data=data, content_type=CONTENT_TYPE_TEXT)

    def get_repo(self, repo: str) -> RepoSchema:
        """Fetch the repo schema."""
        body = self.request('GET', self._repo_path(repo)).json() or {}
        return [SchemaEntry.from_dict(entry) for entry in body.get('schema') or []]

    def create_repo(self, repo: str, region: str, schema: List[SchemaEntry]) -> None:
        self.request('POST', self._repo_path(repo), json_body={
            'region': region,
            'schema': [entry.to_dict() for entry in schema],
        })

    def update_repo(self, repo: str, schema: List[SchemaEntry]) -> None:
        """Replace the repo schema with ``schema``."""
        self.request('PUT', self._repo_path(repo), json_body={
            'schema': [entry.to_dict() for entry in schema],
        })

    def create_export(self, repo: str, name: str, spec: ExportSpec) -> None:
        self.request('POST', self._export_path(repo, name), json_body={
            'type': EXPORT_TYPE_TSDB,
            'whence': EXPORT_WHENCE,
            'spec': spec.to_dict(),
        })

    def update_export(self, repo: str, name: str, spec: ExportSpec) -> None:
        """Replace the export definition wholesale."""
        self.request('PUT', self._export_path(repo, name), json_body={'spec': spec.to_dict()})
