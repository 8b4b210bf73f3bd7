"""Backend clients for the Pandora pipeline and TSDB services."""

from .base import BaseClient, sign_request
from .codes import ErrorCode, extract_error_code
from .pipeline_client import PipelineClient
from .tsdb_client import TSDBClient

__all__ = ['BaseClient', 'sign_request', 'ErrorCode', 'extract_error_code', 'PipelineClient', 'TSDBClient']
