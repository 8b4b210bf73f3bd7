"""
Tests for the encoders, submitter, reconcilers and adapters.
"""
import json
import logging
import unittest
from unittest import mock

import requests

from ..client.codes import ErrorCode
from ..core.config import AdapterConfig
from ..core.errors import (
    BackendError, BackendTransportError, ConfigError, EncodingError,
    NotConnectedError, ReconciliationError,
)
from ..schema.extractor import extract_schema
from ..schema.models import AdapterState, Metric, SchemaEntry, WriteOutcome, WriteResult
from .encoder import _pack, decode_pipeline, encode_line_protocol, encode_pipeline
from .export_reconciler import ExportReconciler
from .factory import WriterRegistry, default_registry
from .pipeline_writer import ExportRefreshSchedule, PipelineWriter
from .schema_reconciler import SchemaReconciler, schema_delta
from .stats import WriteStats
from .submitter import WriteSubmitter
from .tsdb_writer import TSDBWriter


def backend_error(code: ErrorCode, message: str = '') -> BackendError:
    return BackendError(code, message or f"{code.value}: backend says no", status_code=400)


def make_response(status_code: int, body) -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    response._content = json.dumps(body).encode('utf-8')
    response.headers['Content-Type'] = 'application/json'
    return response


class FakeClient:
    """Records calls; ``fail`` maps a method name to the exception it raises."""

    def __init__(self):
        self.calls = []
        self.fail = {}

    def _call(self, method, *args):
        self.calls.append((method,) + args)
        error = self.fail.get(method)
        if error is not None:
            raise error

    def called(self, method):
        return [call for call in self.calls if call[0] == method]

    def close(self):
        self.calls.append(('close',))


class FakePipelineClient(FakeClient):
    """In-memory pipeline backend. ``schema`` of None means the repo is missing."""

    def __init__(self, schema=None):
        super().__init__()
        self.schema = schema
        self.write_errors = []
        self.exports = {}

    def write(self, repo, data):
        self._call('write', repo, data)
        if self.write_errors:
            raise self.write_errors.pop(0)

    def get_repo(self, repo):
        self._call('get_repo', repo)
        if self.schema is None:
            raise backend_error(ErrorCode.REPO_NOT_FOUND)
        return list(self.schema)

    def create_repo(self, repo, region, schema):
        self._call('create_repo', repo, region, list(schema))
        self.schema = list(schema)

    def update_repo(self, repo, schema):
        self._call('update_repo', repo, list(schema))
        self.schema = list(schema)

    def create_export(self, repo, name, spec):
        self._call('create_export', repo, name, spec)
        if name in self.exports:
            raise backend_error(ErrorCode.EXPORT_EXISTS)
        self.exports[name] = spec

    def update_export(self, repo, name, spec):
        self._call('update_export', repo, name, spec)
        self.exports[name] = spec


class FakeTSDBClient(FakeClient):
    """In-memory TSDB backend."""

    def __init__(self):
        super().__init__()
        self.series = set()
        self.write_errors = []

    def write(self, repo, data):
        self._call('write', repo, data)
        if self.write_errors:
            raise self.write_errors.pop(0)

    def create_repo(self, repo, region):
        self._call('create_repo', repo, region)

    def create_series(self, repo, series, retention):
        self._call('create_series', repo, series, retention)
        if series in self.series:
            raise backend_error(ErrorCode.SERIES_EXISTS)
        self.series.add(series)


class StubPipelineWriter(PipelineWriter):
    """PipelineWriter wired to fake backends."""

    def __init__(self, config, pipeline, tsdb):
        super().__init__(config)
        self._fakes = (pipeline, tsdb)

    def _create_clients(self):
        return self._fakes


class StubTSDBWriter(TSDBWriter):
    """TSDBWriter wired to a fake backend."""

    def __init__(self, config, client):
        super().__init__(config)
        self._fake = client

    def _create_client(self):
        return self._fake


def make_config(**overrides) -> AdapterConfig:
    values = dict(url='https://pipeline.qiniu.com', repo='monitor', ak='AK', sk='SK')
    values.update(overrides)
    return AdapterConfig(**values)


def sample_metrics():
    return [
        Metric('cpu', {'host': 'h1'}, {'usage': 0.5}, 1000),
        Metric('mem', {'host': 'h1'}, {'used': 42}, 1000),
        Metric('cpu', {'host': 'h2'}, {'usage': 0.7, 'cores': 8}, 2000),
    ]


class TestPipelineEncoder(unittest.TestCase):
    """Test cases for encode_pipeline()."""

    def test_one_line_per_distinct_timestamp(self):
        metrics = [Metric('cpu', {}, {'v': i}, ts) for i, ts in enumerate([5, 5, 7, 9, 9, 9])]
        lines = encode_pipeline(metrics).decode('utf-8').splitlines()
        self.assertEqual(len(lines), 3)

    def test_line_content(self):
        records = decode_pipeline(encode_pipeline(sample_metrics()))
        # Only the set of lines is compared, never their order
        self.assertCountEqual(records, [
            {'cpu_host': 'h1', 'cpu_usage': '0.5', 'mem_host': 'h1', 'mem_used': '42', 'timestamp': '1000'},
            {'cpu_host': 'h2', 'cpu_usage': '0.7', 'cpu_cores': '8', 'timestamp': '2000'},
        ])

    def test_line_layout(self):
        buffer = encode_pipeline([Metric('cpu', {'host': 'h1'}, {'up': True}, 7)])
        self.assertEqual(buffer, b'cpu_host=h1\tcpu_up=true\ttimestamp=7\n')

    def test_whitespace_is_collapsed(self):
        buffer = encode_pipeline([Metric('log', {'src': 'a\tb'}, {'msg': 'two  words\nhere'}, 1)])
        self.assertEqual(decode_pipeline(buffer), [{'log_src': 'a b', 'log_msg': 'two words here', 'timestamp': '1'}])

    def test_unsafe_keys_are_replaced(self):
        buffer = encode_pipeline([Metric('cpu', {'a=b': 'x'}, {'load\tavg': 1, 'up\n now': True}, 3)])
        self.assertEqual(buffer.count(b'\n'), 1)
        self.assertEqual(decode_pipeline(buffer), [{'cpu_a_b': 'x', 'cpu_load_avg': '1', 'cpu_up_now': 'true', 'timestamp': '3'}])

    def test_empty_batch(self):
        self.assertEqual(encode_pipeline([]), b'')

    def test_size_mismatch_raises(self):
        class Liar(bytes):
            def __len__(self):
                return 1

        with self.assertRaises(EncodingError):
            _pack([Liar(b'abc')])


class TestLineProtocolEncoder(unittest.TestCase):
    """Test cases for encode_line_protocol()."""

    def test_encode(self):
        buffer = encode_line_protocol([Metric('cpu', {'host': 'h1'}, {'value': 123}, 1000)])
        self.assertEqual(buffer, b'cpu,host=h1 value=123i 1000\n')

    def test_one_line_per_point(self):
        buffer = encode_line_protocol(sample_metrics())
        lines = buffer.decode('utf-8').splitlines()
        self.assertEqual(len(lines), 3)
        self.assertTrue(lines[1].startswith('mem,host=h1 used=42i'))

    def test_point_without_fields_is_skipped(self):
        buffer = encode_line_protocol([Metric('cpu', {'host': 'h1'}, {}, 1), Metric('mem', {}, {'v': 1}, 1)])
        self.assertEqual(buffer, b'mem v=1i 1\n')


class TestWriteSubmitter(unittest.TestCase):
    """Test cases for write outcome classification."""

    def submit(self, error, recoverable=PipelineWriter.RECOVERABLE):
        write = mock.Mock(side_effect=error)
        result = WriteSubmitter(write, recoverable).submit('monitor', b'data')
        write.assert_called_once_with('monitor', b'data')
        return result

    def test_success(self):
        self.assertEqual(self.submit(None), WriteResult(WriteOutcome.OK))

    def test_field_type_conflict_is_ok(self):
        error = backend_error(ErrorCode.FIELD_TYPE_CONFLICT, 'field type conflict: dropped=1')
        result = self.submit(error)
        self.assertIs(result.outcome, WriteOutcome.OK)
        self.assertIs(result.error, error)

    def test_pipeline_codes(self):
        self.assertIs(self.submit(backend_error(ErrorCode.REPO_NOT_FOUND)).outcome, WriteOutcome.MISSING_REPO)
        self.assertIs(self.submit(backend_error(ErrorCode.SCHEMA_MISMATCH)).outcome, WriteOutcome.SCHEMA_MISMATCH)
        self.assertIs(self.submit(backend_error(ErrorCode.SERIES_NOT_FOUND)).outcome, WriteOutcome.FATAL)

    def test_tsdb_codes(self):
        recoverable = TSDBWriter.RECOVERABLE
        self.assertIs(self.submit(backend_error(ErrorCode.SERIES_NOT_FOUND), recoverable).outcome,
                      WriteOutcome.MISSING_SERIES)
        self.assertIs(self.submit(backend_error(ErrorCode.REPO_NOT_FOUND), recoverable).outcome,
                      WriteOutcome.FATAL)

    def test_unknown_and_transport_are_fatal(self):
        error = backend_error(ErrorCode.UNKNOWN, 'database not found')
        self.assertEqual(self.submit(error), WriteResult(WriteOutcome.FATAL, error))
        transport = BackendTransportError('timeout')
        self.assertEqual(self.submit(transport), WriteResult(WriteOutcome.FATAL, transport))


class TestSchemaDelta(unittest.TestCase):
    """Test cases for schema_delta()."""

    def test_only_new_keys_are_sent(self):
        extracted = extract_schema([Metric('m', {}, {'a': 'x', 'b': 1}, 1)])
        fetched = [SchemaEntry('m_a', 'string')]
        self.assertEqual(schema_delta(fetched, extracted), [
            SchemaEntry('m_b', 'long'),
            SchemaEntry('timestamp', 'long'),
        ])

    def test_existing_timestamp_not_repeated(self):
        extracted = extract_schema([Metric('m', {'host': 'h'}, {'a': 1.5}, 1)])
        fetched = [SchemaEntry('timestamp', 'long', True)]
        self.assertEqual(schema_delta(fetched, extracted), [
            SchemaEntry('m_host', 'string'),
            SchemaEntry('m_a', 'float'),
        ])

    def test_existing_types_are_never_changed(self):
        extracted = extract_schema([Metric('m', {}, {'a': 1}, 1)])
        fetched = [SchemaEntry('m_a', 'string'), SchemaEntry('timestamp', 'long')]
        self.assertEqual(schema_delta(fetched, extracted), [])


class TestExportReconciler(unittest.TestCase):
    """Test cases for ExportReconciler."""

    def setUp(self):
        self.pipeline = FakePipelineClient(schema=[])
        self.tsdb = FakeTSDBClient()
        self.stats = WriteStats('test')
        self.reconciler = ExportReconciler(self.pipeline, self.tsdb, 'monitor', self.stats)

    def test_create(self):
        spec = self.reconciler.create_or_update_export('cpu', {'host'}, {'usage', 'cores'})
        self.assertEqual(spec.to_dict(), {
            'destRepoName': 'monitor',
            'seriesName': 'cpu',
            'tags': {'host': '#cpu_host'},
            'fields': {'cores': '#cpu_cores', 'usage': '#cpu_usage'},
            'timestamp': '#timestamp',
        })
        self.assertEqual(self.tsdb.called('create_series'), [('create_series', 'monitor', 'cpu', '7d')])
        self.assertEqual(self.pipeline.exports, {'export_cpu_toTSDB': spec})
        self.assertEqual(self.pipeline.called('update_export'), [])

    def test_idempotent(self):
        first = self.reconciler.create_or_update_export('cpu', {'host'}, {'usage'})
        second = self.reconciler.create_or_update_export('cpu', {'host'}, {'usage'})

        self.assertEqual(self.stats.reconciliations_for('create_export'), 1)
        self.assertEqual(len(self.pipeline.called('update_export')), 1)
        self.assertEqual(first, second)
        self.assertEqual(self.pipeline.exports['export_cpu_toTSDB'], first)

    def test_update_replaces_wholesale(self):
        self.reconciler.create_or_update_export('cpu', {'host', 'dc'}, {'usage', 'cores'})
        self.reconciler.create_or_update_export('cpu', {'host'}, {'usage'})
        spec = self.pipeline.exports['export_cpu_toTSDB']
        self.assertEqual(spec.tags, {'host': '#cpu_host'})
        self.assertEqual(spec.fields, {'usage': '#cpu_usage'})

    def test_series_creation_failure_is_ignored(self):
        self.tsdb.fail['create_series'] = backend_error(ErrorCode.UNKNOWN, 'boom')
        self.reconciler.create_or_update_export('cpu', {'host'}, {'usage'})
        self.assertIn('export_cpu_toTSDB', self.pipeline.exports)

    def test_create_error_propagates(self):
        self.pipeline.fail['create_export'] = backend_error(ErrorCode.UNKNOWN, 'denied')
        with self.assertRaises(ReconciliationError):
            self.reconciler.create_or_update_export('cpu', {'host'}, {'usage'})

    def test_update_error_propagates(self):
        self.reconciler.create_or_update_export('cpu', {'host'}, {'usage'})
        self.pipeline.fail['update_export'] = BackendTransportError('timeout')
        with self.assertRaises(ReconciliationError):
            self.reconciler.create_or_update_export('cpu', {'host'}, {'usage'})

    def test_reconcile_continues_after_failure(self):
        original = self.pipeline.create_export

        def create_export(repo, name, spec):
            if spec.series_name == 'cpu':
                raise backend_error(ErrorCode.UNKNOWN, 'denied')
            original(repo, name, spec)

        self.pipeline.create_export = create_export
        failures = self.reconciler.reconcile(sample_metrics())
        self.assertEqual(list(failures), ['cpu'])
        self.assertIn('export_mem_toTSDB', self.pipeline.exports)

    def test_reconcile_unions_keys_per_series(self):
        self.reconciler.reconcile(sample_metrics())
        spec = self.pipeline.exports['export_cpu_toTSDB']
        self.assertEqual(set(spec.fields), {'usage', 'cores'})


class TestSchemaReconciler(unittest.TestCase):
    """Test cases for SchemaReconciler."""

    def build(self, schema=None):
        self.pipeline = FakePipelineClient(schema=schema)
        self.tsdb = FakeTSDBClient()
        exports = ExportReconciler(self.pipeline, self.tsdb, 'monitor')
        return SchemaReconciler(self.pipeline, self.tsdb, 'monitor', 'nb', exports)

    def test_bootstrap_missing_repo(self):
        self.build(schema=None).reconcile(sample_metrics())

        (_, repo, region, schema), = self.pipeline.called('create_repo')
        self.assertEqual((repo, region), ('monitor', 'nb'))
        self.assertEqual([entry.key for entry in schema],
                         ['cpu_host', 'mem_host', 'cpu_usage', 'mem_used', 'cpu_cores', 'timestamp'])
        self.assertEqual(self.tsdb.called('create_repo'), [('create_repo', 'monitor', 'nb')])
        self.assertEqual(set(self.pipeline.exports), {'export_cpu_toTSDB', 'export_mem_toTSDB'})

    def test_tsdb_repo_failure_escalates(self):
        reconciler = self.build(schema=None)
        self.tsdb.fail['create_repo'] = backend_error(ErrorCode.UNKNOWN, 'quota exceeded')
        with self.assertRaises(ReconciliationError):
            reconciler.reconcile(sample_metrics())
        self.assertEqual(set(self.pipeline.exports), {'export_cpu_toTSDB', 'export_mem_toTSDB'})

    def test_pipeline_repo_failure_is_logged_only(self):
        reconciler = self.build(schema=None)
        self.pipeline.fail['create_repo'] = backend_error(ErrorCode.UNKNOWN, 'quota exceeded')
        reconciler.reconcile(sample_metrics())
        self.assertEqual(self.tsdb.called('create_repo'), [])

    def test_update_sends_fetched_plus_delta(self):
        fetched = [SchemaEntry('cpu_host', 'string'), SchemaEntry('timestamp', 'long')]
        self.build(schema=fetched).reconcile(sample_metrics())

        (_, _, schema), = self.pipeline.called('update_repo')
        self.assertEqual(schema[:2], fetched)
        self.assertEqual([entry.key for entry in schema[2:]], ['mem_host', 'cpu_usage', 'mem_used', 'cpu_cores'])
        self.assertEqual(self.pipeline.called('create_repo'), [])
        self.assertEqual(len(self.pipeline.exports), 2)

    def test_no_delta_skips_update(self):
        metrics = [Metric('cpu', {}, {'usage': 1.0}, 1)]
        self.build(schema=[SchemaEntry('cpu_usage', 'float'), SchemaEntry('timestamp', 'long')]).reconcile(metrics)
        self.assertEqual(self.pipeline.called('update_repo'), [])
        self.assertIn('export_cpu_toTSDB', self.pipeline.exports)

    def test_update_failure_still_reconciles_exports(self):
        reconciler = self.build(schema=[])
        self.pipeline.fail['update_repo'] = BackendTransportError('timeout')
        reconciler.reconcile(sample_metrics())
        self.assertEqual(len(self.pipeline.exports), 2)

    def test_fetch_failure_skips_everything(self):
        reconciler = self.build(schema=[])
        self.pipeline.fail['get_repo'] = backend_error(ErrorCode.UNKNOWN, 'internal error')
        reconciler.reconcile(sample_metrics())
        self.assertEqual(self.pipeline.called('update_repo'), [])
        self.assertEqual(self.pipeline.called('create_export'), [])


class TestExportRefreshSchedule(unittest.TestCase):
    """Test cases for the counter based refresh sampling."""

    def test_every_nth_call(self):
        schedule = ExportRefreshSchedule(5)
        self.assertEqual([schedule.due() for _ in range(10)], [False] * 4 + [True] + [False] * 4 + [True])

    def test_disabled(self):
        schedule = ExportRefreshSchedule(0)
        self.assertFalse(any(schedule.due() for _ in range(20)))


class TestPipelineWriter(unittest.TestCase):
    """Test cases for the pipeline adapter."""

    def build(self, schema=None, **overrides):
        overrides.setdefault('export_refresh_every', 0)
        self.pipeline = FakePipelineClient(schema=schema)
        self.tsdb = FakeTSDBClient()
        writer = StubPipelineWriter(make_config(**overrides), self.pipeline, self.tsdb)
        writer.connect()
        return writer

    def test_connect_invalid_url(self):
        writer = PipelineWriter(make_config(url='htt://foobar:8089'))
        with self.assertRaises(ConfigError):
            writer.connect()
        self.assertIs(writer.state, AdapterState.UNCONNECTED)
        self.assertIsNone(writer.submitter)

    def test_connect_invalid_tsdb_url(self):
        writer = PipelineWriter(make_config(tsdb_url='tsdb.qiniu.com'))
        with self.assertRaises(ConfigError):
            writer.connect()
        self.assertIs(writer.state, AdapterState.UNCONNECTED)

    def test_write_before_connect(self):
        writer = PipelineWriter(make_config())
        with self.assertRaises(NotConnectedError):
            writer.write(sample_metrics())

    def test_write(self):
        writer = self.build(schema=[])
        writer.write(sample_metrics())
        (_, repo, data), = self.pipeline.called('write')
        self.assertEqual(repo, 'monitor')
        self.assertEqual(len(decode_pipeline(data)), 2)
        self.assertEqual(self.pipeline.called('get_repo'), [])
        self.assertEqual(writer.stats.writes_for('ok'), 1)

    def test_empty_batch(self):
        writer = self.build(schema=[])
        writer.write([])
        self.assertEqual(self.pipeline.calls, [])

    def test_missing_repo_without_auto_create(self):
        writer = self.build(schema=None)
        self.pipeline.write_errors.append(backend_error(ErrorCode.REPO_NOT_FOUND))
        writer.write(sample_metrics())
        self.assertEqual(len(self.pipeline.called('write')), 1)
        self.assertEqual(self.pipeline.called('get_repo'), [])

    def test_schema_mismatch_without_auto_create(self):
        writer = self.build(schema=[])
        self.pipeline.write_errors.append(backend_error(ErrorCode.SCHEMA_MISMATCH))
        writer.write(sample_metrics())
        self.assertEqual(self.pipeline.called('update_repo'), [])

    def test_missing_repo_bootstraps(self):
        writer = self.build(schema=None, auto_create_repo=True)
        self.pipeline.write_errors.append(backend_error(ErrorCode.REPO_NOT_FOUND))
        writer.write(sample_metrics())

        self.assertEqual(len(self.pipeline.called('create_repo')), 1)
        self.assertEqual(len(self.tsdb.called('create_repo')), 1)
        self.assertEqual(set(self.pipeline.exports), {'export_cpu_toTSDB', 'export_mem_toTSDB'})
        # The batch itself is not re-sent
        self.assertEqual(len(self.pipeline.called('write')), 1)

    def test_bootstrap_tsdb_failure_fails_write(self):
        writer = self.build(schema=None, auto_create_repo=True)
        self.pipeline.write_errors.append(backend_error(ErrorCode.REPO_NOT_FOUND))
        self.tsdb.fail['create_repo'] = backend_error(ErrorCode.UNKNOWN, 'denied')
        with self.assertRaises(ReconciliationError):
            writer.write(sample_metrics())

    def test_schema_mismatch_updates(self):
        writer = self.build(schema=[SchemaEntry('timestamp', 'long')], auto_create_repo=True)
        self.pipeline.write_errors.append(backend_error(ErrorCode.SCHEMA_MISMATCH))
        writer.write(sample_metrics())
        self.assertEqual(len(self.pipeline.called('update_repo')), 1)

    def test_field_type_conflict_is_not_an_error(self):
        writer = self.build(schema=[])
        self.pipeline.write_errors.append(backend_error(ErrorCode.FIELD_TYPE_CONFLICT, 'field type conflict'))
        writer.write(sample_metrics())
        self.assertEqual(len(self.pipeline.called('write')), 1)
        self.assertEqual(writer.stats.writes_for('dropped'), 1)

    def test_field_type_conflict_skips_export_refresh(self):
        writer = self.build(schema=[], export_refresh_every=1)
        self.pipeline.write_errors.append(backend_error(ErrorCode.FIELD_TYPE_CONFLICT, 'field type conflict'))
        writer.write(sample_metrics())
        self.assertEqual(self.pipeline.called('create_export'), [])
        writer.write(sample_metrics())
        self.assertEqual(len(self.pipeline.exports), 2)

    def test_fatal_error_propagates(self):
        writer = self.build(schema=[])
        self.pipeline.write_errors.append(backend_error(ErrorCode.UNKNOWN, 'forbidden'))
        with self.assertRaises(BackendError):
            writer.write(sample_metrics())

    def test_transport_error_propagates(self):
        writer = self.build(schema=[])
        self.pipeline.write_errors.append(BackendTransportError('connection refused'))
        with self.assertRaises(BackendTransportError):
            writer.write(sample_metrics())

    def test_periodic_export_refresh(self):
        writer = self.build(schema=[], export_refresh_every=2)
        writer.write(sample_metrics())
        self.assertEqual(self.pipeline.called('create_export'), [])
        writer.write(sample_metrics())
        self.assertEqual(len(self.pipeline.exports), 2)

    def test_periodic_refresh_failure_is_not_escalated(self):
        writer = self.build(schema=[], export_refresh_every=1)
        self.pipeline.fail['create_export'] = backend_error(ErrorCode.UNKNOWN, 'denied')
        writer.write(sample_metrics())

    def test_metrics_port_in_use(self):
        self.pipeline = FakePipelineClient(schema=[])
        self.tsdb = FakeTSDBClient()
        writer = StubPipelineWriter(make_config(metrics_port=9091), self.pipeline, self.tsdb)
        in_use = OSError(98, 'Address already in use')
        with mock.patch.object(WriteStats, 'start_exporter', side_effect=in_use):
            with self.assertRaises(ConfigError):
                writer.connect()
        self.assertIs(writer.state, AdapterState.UNCONNECTED)
        self.assertIn(('close',), self.pipeline.calls)
        self.assertIn(('close',), self.tsdb.calls)
        with self.assertRaises(NotConnectedError):
            writer.write(sample_metrics())

    def test_close(self):
        writer = self.build(schema=[])
        writer.close()
        self.assertIs(writer.state, AdapterState.CLOSED)
        self.assertIn(('close',), self.pipeline.calls)
        with self.assertRaises(NotConnectedError):
            writer.write(sample_metrics())


class TestTSDBWriter(unittest.TestCase):
    """Test cases for the TSDB adapter against a mocked HTTP session."""

    def setUp(self):
        self.config = make_config(url='http://127.0.0.1:8086', repo='test')

    def test_connect_invalid_url(self):
        writer = TSDBWriter(make_config(url='htt://foobar:8089'))
        with self.assertRaises(ConfigError):
            writer.connect()

    @mock.patch('requests.Session.request')
    def test_database_not_found(self, request):
        request.return_value = make_response(404, {'results': [{}], 'error': 'database not found'})
        writer = TSDBWriter(self.config)
        writer.connect()
        with self.assertRaises(BackendError):
            writer.write(sample_metrics())
        writer.close()

    @mock.patch('requests.Session.request')
    def test_field_type_conflict(self, request):
        request.return_value = make_response(404, {
            'results': [{}],
            'error': 'field type conflict: input field "value" on measurement "test" is type integer, '
                     'already exists as type float dropped=1',
        })
        writer = TSDBWriter(self.config)
        writer.connect()
        writer.write(sample_metrics())
        self.assertEqual(request.call_count, 1)
        writer.close()

    def test_missing_series_creates_series(self):
        client = FakeTSDBClient()
        client.write_errors.append(backend_error(ErrorCode.SERIES_NOT_FOUND))
        writer = StubTSDBWriter(make_config(auto_create_series=True, retention_policy='3d'), client)
        writer.connect()
        writer.write(sample_metrics())
        self.assertEqual(client.called('create_series'), [
            ('create_series', 'monitor', 'cpu', '3d'),
            ('create_series', 'monitor', 'mem', '3d'),
        ])

    def test_missing_series_without_auto_create(self):
        client = FakeTSDBClient()
        client.write_errors.append(backend_error(ErrorCode.SERIES_NOT_FOUND))
        writer = StubTSDBWriter(make_config(), client)
        writer.connect()
        writer.write(sample_metrics())
        self.assertEqual(client.called('create_series'), [])

    def test_series_creation_failure_is_logged(self):
        client = FakeTSDBClient()
        client.write_errors.append(backend_error(ErrorCode.SERIES_NOT_FOUND))
        client.fail['create_series'] = backend_error(ErrorCode.UNKNOWN, 'denied')
        writer = StubTSDBWriter(make_config(auto_create_series=True), client)
        writer.connect()
        writer.write(sample_metrics())
        self.assertEqual(len(client.called('create_series')), 2)


class TestWriterRegistry(unittest.TestCase):
    """Test cases for the writer registry."""

    def test_default_registry(self):
        registry = default_registry()
        self.assertEqual(registry.names(), ['pandora', 'pipeline'])
        self.assertIsInstance(registry.create('pipeline', make_config()), PipelineWriter)
        self.assertIsInstance(registry.create('pandora', make_config()), TSDBWriter)

    def test_unknown(self):
        with self.assertRaises(ValueError):
            default_registry().create('influxdb', make_config())

    def test_duplicate(self):
        registry = WriterRegistry()
        registry.register('pipeline', PipelineWriter)
        with self.assertRaises(ValueError):
            registry.register('pipeline', TSDBWriter)

    def test_sample_config(self):
        writer = default_registry().create('pipeline', make_config())
        self.assertIn('auto_create_repo', writer.sample_config())
        self.assertTrue(writer.description())


if __name__ == '__main__':
    logging.basicConfig(level=logging.ERROR)
    unittest.main()
