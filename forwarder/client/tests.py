"""
Tests for the Pandora backend clients.
"""
import base64
import hashlib
import hmac
import json
import logging
import unittest
from unittest import mock

import requests

from ..core.errors import BackendError, BackendTransportError
from ..schema.models import ExportSpec, SchemaEntry
from .base import BaseClient, sign_request
from .codes import ErrorCode, extract_error_code
from .pipeline_client import PipelineClient
from .tsdb_client import TSDBClient


def make_response(status_code: int, body=None, text: str = '', headers=None) -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    if body is not None:
        response._content = json.dumps(body).encode('utf-8')
        response.headers['Content-Type'] = 'application/json'
    else:
        response._content = text.encode('utf-8')
    response.headers.update(headers or {})
    return response


class TestErrorCodes(unittest.TestCase):
    """Test cases for extract_error_code()."""

    def test_known_codes(self):
        self.assertIs(extract_error_code('E18102: repo does not exist'), ErrorCode.REPO_NOT_FOUND)
        self.assertIs(extract_error_code('E18111: schema not match'), ErrorCode.SCHEMA_MISMATCH)
        self.assertIs(extract_error_code('E18301: export already exists'), ErrorCode.EXPORT_EXISTS)
        self.assertIs(extract_error_code('E6302: series already exists'), ErrorCode.SERIES_EXISTS)
        self.assertIs(extract_error_code('E7101: series not exists'), ErrorCode.SERIES_NOT_FOUND)

    def test_field_type_conflict(self):
        message = ('field type conflict: input field "value" on measurement "test" is type integer, '
                   'already exists as type float dropped=1')
        self.assertIs(extract_error_code(message), ErrorCode.FIELD_TYPE_CONFLICT)

    def test_unknown(self):
        self.assertIs(extract_error_code('database not found'), ErrorCode.UNKNOWN)
        self.assertIs(extract_error_code('E99999: something new'), ErrorCode.UNKNOWN)
        self.assertIs(extract_error_code(''), ErrorCode.UNKNOWN)

    def test_code_must_be_a_whole_token(self):
        self.assertIs(extract_error_code('XE18102Y'), ErrorCode.UNKNOWN)


class TestSignRequest(unittest.TestCase):
    """Test cases for request signing."""

    def test_signature(self):
        headers = {'Content-Type': 'application/json', 'Date': 'Mon, 02 Jan 2017 15:04:05 GMT',
                   'X-Qiniu-B': '2', 'X-Qiniu-A': '1'}
        expected_input = ('POST\n\napplication/json\nMon, 02 Jan 2017 15:04:05 GMT\n'
                          'x-qiniu-a:1\nx-qiniu-b:2\n/v2/repos/monitor')
        digest = hmac.new(b'SK', expected_input.encode('utf-8'), hashlib.sha1).digest()
        expected = base64.urlsafe_b64encode(digest).decode('ascii')
        self.assertEqual(sign_request('SK', 'post', '/v2/repos/monitor', headers), expected)


class TestBaseClient(unittest.TestCase):
    """Test cases for BaseClient.request()."""

    def setUp(self):
        self.session = mock.MagicMock(spec=requests.Session)
        self.session.headers = {}
        self.client = BaseClient('https://pipeline.qiniu.com/', 'AK', 'SK', timeout=3.0, session=self.session)

    def test_success_sends_signed_request(self):
        self.session.request.return_value = make_response(200, {})
        self.client.request('GET', '/v2/repos/monitor')

        args, kwargs = self.session.request.call_args
        self.assertEqual(args, ('GET', 'https://pipeline.qiniu.com/v2/repos/monitor'))
        self.assertEqual(kwargs['timeout'], 3.0)
        self.assertTrue(kwargs['headers']['Authorization'].startswith('Pandora AK:'))

    def test_error_code_is_extracted(self):
        self.session.request.return_value = make_response(
            404, {'error': 'E18102: repo does not exist'}, headers={'X-Reqid': 'req-1'})
        with self.assertRaises(BackendError) as ctx:
            self.client.request('GET', '/v2/repos/monitor')
        self.assertIs(ctx.exception.code, ErrorCode.REPO_NOT_FOUND)
        self.assertEqual(ctx.exception.status_code, 404)
        self.assertEqual(ctx.exception.reqid, 'req-1')

    def test_plain_text_error(self):
        self.session.request.return_value = make_response(500, text='internal error')
        with self.assertRaises(BackendError) as ctx:
            self.client.request('POST', '/v2/repos/monitor/data', data=b'x')
        self.assertIs(ctx.exception.code, ErrorCode.UNKNOWN)
        self.assertEqual(ctx.exception.message, 'internal error')

    def test_transport_error(self):
        self.session.request.side_effect = requests.ConnectionError('refused')
        with self.assertRaises(BackendTransportError):
            self.client.request('GET', '/v2/repos/monitor')

    def test_timeout_error(self):
        self.session.request.side_effect = requests.Timeout('slow')
        with self.assertRaises(BackendTransportError):
            self.client.request('GET', '/v2/repos/monitor')


class TestPipelineClient(unittest.TestCase):
    """Test cases for the pipeline API paths and payloads."""

    def setUp(self):
        self.session = mock.MagicMock(spec=requests.Session)
        self.session.headers = {}
        self.session.request.return_value = make_response(200, {})
        self.client = PipelineClient('https://pipeline.qiniu.com', 'AK', 'SK', session=self.session)

    def sent(self):
        args, kwargs = self.session.request.call_args
        body = json.loads(kwargs['data']) if kwargs['data'] else None
        return args[0], args[1], body

    def test_write(self):
        self.client.write('monitor', b'cpu_value=1\ttimestamp=1\n')
        args, kwargs = self.session.request.call_args
        self.assertEqual(args, ('POST', 'https://pipeline.qiniu.com/v2/repos/monitor/data'))
        self.assertEqual(kwargs['data'], b'cpu_value=1\ttimestamp=1\n')
        self.assertEqual(kwargs['headers']['Content-Type'], 'text/plain')

    def test_get_repo(self):
        self.session.request.return_value = make_response(200, {
            'region': 'nb',
            'schema': [{'key': 'cpu_host', 'valtype': 'string', 'required': False},
                       {'key': 'timestamp', 'valtype': 'long', 'required': True}],
        })
        schema = self.client.get_repo('monitor')
        self.assertEqual(schema, [SchemaEntry('cpu_host', 'string'), SchemaEntry('timestamp', 'long', True)])

    def test_create_and_update_repo(self):
        schema = [SchemaEntry('cpu_host', 'string')]
        self.client.create_repo('monitor', 'nb', schema)
        self.assertEqual(self.sent(), ('POST', 'https://pipeline.qiniu.com/v2/repos/monitor', {
            'region': 'nb', 'schema': [{'key': 'cpu_host', 'valtype': 'string', 'required': False}]}))

        self.client.update_repo('monitor', schema)
        self.assertEqual(self.sent(), ('PUT', 'https://pipeline.qiniu.com/v2/repos/monitor', {
            'schema': [{'key': 'cpu_host', 'valtype': 'string', 'required': False}]}))

    def test_create_and_update_export(self):
        spec = ExportSpec('monitor', 'cpu', {'host': '#cpu_host'}, {'usage': '#cpu_usage'})
        path = 'https://pipeline.qiniu.com/v2/repos/monitor/exports/export_cpu_toTSDB'

        self.client.create_export('monitor', 'export_cpu_toTSDB', spec)
        method, url, body = self.sent()
        self.assertEqual((method, url), ('POST', path))
        self.assertEqual(body['type'], 'tsdb')
        self.assertEqual(body['whence'], 'oldest')
        self.assertEqual(body['spec'], spec.to_dict())

        self.client.update_export('monitor', 'export_cpu_toTSDB', spec)
        self.assertEqual(self.sent(), ('PUT', path, {'spec': spec.to_dict()}))


class TestTSDBClient(unittest.TestCase):
    """Test cases for the TSDB API paths and payloads."""

    def setUp(self):
        self.session = mock.MagicMock(spec=requests.Session)
        self.session.headers = {}
        self.session.request.return_value = make_response(200, {})
        self.client = TSDBClient('https://tsdb.qiniu.com', 'AK', 'SK', session=self.session)

    def test_write(self):
        self.client.write('telegraf', b'cpu,host=h1 value=1i 1\n')
        args, _ = self.session.request.call_args
        self.assertEqual(args, ('POST', 'https://tsdb.qiniu.com/v4/repos/telegraf/points'))

    def test_create_series(self):
        self.client.create_series('telegraf', 'cpu', '7d')
        args, kwargs = self.session.request.call_args
        self.assertEqual(args, ('POST', 'https://tsdb.qiniu.com/v4/repos/telegraf/series/cpu'))
        self.assertEqual(json.loads(kwargs['data']), {'retention': '7d'})

    def test_create_repo(self):
        self.client.create_repo('telegraf', 'nb')
        args, kwargs = self.session.request.call_args
        self.assertEqual(args, ('POST', 'https://tsdb.qiniu.com/v4/repos/telegraf'))
        self.assertEqual(json.loads(kwargs['data']), {'region': 'nb'})


if __name__ == '__main__':
    logging.basicConfig(level=logging.ERROR)
    unittest.main()
