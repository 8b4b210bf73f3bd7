"""Client for the Pandora TSDB API."""

from urllib.parse import quote

from .base import CONTENT_TYPE_TEXT, BaseClient


class TSDBClient(BaseClient):
    """Point, repo and series calls of the TSDB backend."""

    @staticmethod
    def _repo_path(repo: str) -> str:
        return f"/v4/repos/{quote(repo, safe='')}"

    def write(self, repo: str, data: bytes) -> None:
        """Post line protocol points to the repo."""
        self.request('POST', f"{self._repo_path(repo)}/points", data=data, content_type=CONTENT_TYPE_TEXT)

    def create_repo(self, repo: str, region: str) -> None:
        self.request('POST', self._repo_path(repo), json_body={'region': region})

    def create_series(self, repo: str, series: str, retention: str) -> None:
        body = {'retention': retention} if retention else {}
        self.request('POST', f"{self._repo_path(repo)}/series/{quote(series, safe='')}", json_body=body)
