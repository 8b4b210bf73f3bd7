"""HTTP plumbing shared by the Pandora pipeline and TSDB clients."""

import base64
import hashlib
import hmac
import json
import logging
from email.utils import formatdate
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import requests

from ..core.errors import BackendError, BackendTransportError
from .codes import ErrorCode, extract_error_code

LOG = logging.getLogger(__name__)

USER_AGENT = 'pandora-forwarder'
CONTENT_TYPE_JSON = 'application/json'
CONTENT_TYPE_TEXT = 'text/plain'


def sign_request(sk: str, method: str, path: str, headers: Dict[str, str]) -> str:
    """Compute the Pandora request signature.

    The signed string is the method, Content-MD5, Content-Type, Date, the
    sorted ``X-Qiniu-*`` headers and finally the resource path.
    """
    lowered = {k.lower(): v for k, v in headers.items()}
    qiniu_headers = ''.join(
        f"{key}:{lowered[key]}\n"
        for key in sorted(k for k in lowered if k.startswith('x-qiniu-'))
    )
    to_sign = '\n'.join([
        method.upper(),
        lowered.get('content-md5', ''),
        lowered.get('content-type', ''),
        lowered.get('date', ''),
    ]) + '\n' + qiniu_headers + path

    digest = hmac.new(sk.encode('utf-8'), to_sign.encode('utf-8'), hashlib.sha1).digest()
    return base64.urlsafe_b64encode(digest).decode('ascii')


class BaseClient:
    """Signed JSON/text requests against one Pandora endpoint.

    Args:
        endpoint: Base URL, e.g. https://pipeline.qiniu.com
        ak: Access key
        sk: Secret key
        timeout: Per request timeout in seconds, None disables the deadline
        session: Optional pre-built requests.Session
    """

    def __init__(self, endpoint: str, ak: str, sk: str, timeout: Optional[float] = 5.0,
                 session: Optional[requests.Session] = None):
        self.endpoint = endpoint.rstrip('/')
        self.ak = ak
        self.sk = sk
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({'User-Agent': USER_AGENT})

    def _headers(self, method: str, path: str, content_type: str) -> Dict[str, str]:
        headers = {
            'Content-Type': content_type,
            'Date': formatdate(usegmt=True),
        }
        signature = sign_request(self.sk, method, path, headers)
        headers['Authorization'] = f"Pandora {self.ak}:{signature}"
        return headers

    def request(self, method: str, path: str, json_body: Any = None,
                data: Optional[bytes] = None,
                content_type: str = CONTENT_TYPE_JSON) -> requests.Response:
        """Send one signed request.

        Returns:
            The successful response

        Raises:
            BackendTransportError: if the backend could not be reached
            BackendError: if the backend answered with a non-2xx status
        """
        if json_body is not None:
            data = json.dumps(json_body).encode('utf-8')
            content_type = CONTENT_TYPE_JSON

        url = self.endpoint + path
        headers = self._headers(method, urlparse(url).path, content_type)

        LOG.debug(f"{method} {url} ({len(data) if data else 0} bytes)")
        try:
            response = self.session.request(method, url, data=data, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise BackendTransportError(f"{method} {url} failed: {e}") from e

        if response.status_code >= 300:
            raise self._error_from_response(response)
        return response

    @staticmethod
    def _error_from_response(response: requests.Response) -> BackendError:
        message = ''
        try:
            body = response.json()
            if isinstance(body, dict):
                message = str(body.get('error') or body.get('message') or '')
        except ValueError:
            pass
        if not message:
            message = response.text.strip() or f"HTTP {response.status_code}"

        code = extract_error_code(message)
        reqid = response.headers.get('X-Reqid')
        if code is ErrorCode.UNKNOWN:
            LOG.debug(f"Unrecognised backend error (HTTP {response.status_code}): {message}")
        return BackendError(code, message, status_code=response.status_code, reqid=reqid)

    def close(self) -> None:
        self.session.close()
