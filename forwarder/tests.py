"""
Tests for the command line entry point.
"""
import io
import logging
import os
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest import mock

from .client.codes import ErrorCode
from .core.errors import BackendError
from .main import batched, forward, main
from .schema.models import AdapterState
from .writer.base import Writer
from .writer.factory import WriterRegistry
from .writer.stats import WriteStats

LINES = [
    'cpu,host=h1 usage=0.5 1000\n',
    'mem,host=h1 used=42i 1000\n',
    'cpu,host=h2 usage=0.7 2000\n',
    'not line protocol\n',
    'cpu,host=h3 usage=0.1 3000\n',
]


class RecordingWriter(Writer):
    """Writer that keeps every batch in memory."""

    name = 'recording'
    DESCRIPTION = 'Keeps batches in memory'
    SAMPLE_CONFIG = 'output: recording\n'

    instances = []
    fail_with = None

    def __init__(self, config):
        super().__init__(config)
        self.batches = []
        RecordingWriter.instances.append(self)

    def _build_clients(self):
        pass

    def _write(self, metrics):
        if self.fail_with is not None:
            raise self.fail_with
        self.batches.append(list(metrics))


class TestForward(unittest.TestCase):
    """Test cases for batching and forwarding."""

    def test_batched(self):
        self.assertEqual(list(batched(range(5), 2)), [[0, 1], [2, 3], [4]])
        self.assertEqual(list(batched([], 3)), [])

    def test_forward(self):
        writer = mock.Mock()
        total = forward(writer, io.StringIO(''.join(LINES)), batch_size=2)
        self.assertEqual(total, 4)
        self.assertEqual(writer.write.call_count, 3)
        first = writer.write.call_args_list[0][0][0]
        self.assertEqual([m.name for m in first], ['cpu', 'mem'])


class TestMain(unittest.TestCase):
    """Test cases for main()."""

    def setUp(self):
        self.temp_dir = TemporaryDirectory()
        self.input_file = Path(self.temp_dir.name) / 'metrics.lp'
        self.input_file.write_text(''.join(LINES), encoding='utf-8')

        self.registry = WriterRegistry()
        self.registry.register(RecordingWriter.name, RecordingWriter)
        RecordingWriter.instances = []
        RecordingWriter.fail_with = None

        self.env = mock.patch.dict(os.environ, {}, clear=True)
        self.env.start()

    def tearDown(self):
        self.env.stop()
        self.temp_dir.cleanup()
        logging.getLogger().handlers.clear()

    def run_main(self, *extra):
        argv = ['--output', 'recording', '--url', 'http://localhost:8086', '--repo', 'monitor',
                '--ak', 'AK', '--sk', 'SK', '--input', str(self.input_file), '--log-level', 'ERROR']
        return main(argv + list(extra), registry=self.registry)

    def test_forwards_file(self):
        self.assertEqual(self.run_main('--batch-size', '3'), 0)
        writer, = RecordingWriter.instances
        self.assertEqual([len(batch) for batch in writer.batches], [3, 1])
        self.assertIs(writer.state, AdapterState.CLOSED)

    def test_settings_from_config_file(self):
        config_file = Path(self.temp_dir.name) / 'pandora.yaml'
        config_file.write_text('output: recording\nurl: "http://localhost:8086"\nrepo: monitor\n'
                               'ak: AK\nsk: SK\nauto_create_repo: true\n', encoding='utf-8')
        code = main(['--config', str(config_file), '--input', str(self.input_file), '--log-level', 'ERROR'],
                    registry=self.registry)
        self.assertEqual(code, 0)
        writer, = RecordingWriter.instances
        self.assertTrue(writer.config.auto_create_repo)

    def test_sample_config(self):
        with mock.patch('sys.stdout', new_callable=io.StringIO) as stdout:
            code = main(['--sample-config', '--log-level', 'ERROR'])
        self.assertEqual(code, 0)
        self.assertIn('auto_create_repo', stdout.getvalue())

    def test_invalid_config(self):
        self.assertEqual(self.run_main('--url', 'htt://foobar:8089'), 2)
        self.assertEqual(RecordingWriter.instances[0].state, AdapterState.UNCONNECTED)

    def test_metrics_port_in_use(self):
        in_use = OSError(98, 'Address already in use')
        with mock.patch.object(WriteStats, 'start_exporter', side_effect=in_use):
            self.assertEqual(self.run_main('--metrics-port', '9091'), 2)
        self.assertIs(RecordingWriter.instances[0].state, AdapterState.UNCONNECTED)

    def test_missing_input(self):
        self.assertEqual(self.run_main('--input', str(Path(self.temp_dir.name) / 'missing.lp')), 2)

    def test_write_failure(self):
        RecordingWriter.fail_with = BackendError(ErrorCode.UNKNOWN, 'forbidden', status_code=403)
        self.assertEqual(self.run_main(), 1)
        self.assertIs(RecordingWriter.instances[0].state, AdapterState.CLOSED)


if __name__ == '__main__':
    logging.basicConfig(level=logging.ERROR)
    unittest.main()
