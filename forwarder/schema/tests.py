"""
Tests for schema extraction and line protocol parsing.
"""
import logging
import unittest

from .extractor import extract_schema, infer_value_type, series_from_line_protocol, series_names
from .line_protocol import LineProtocolError, parse_line, parse_lines
from .models import ExportSpec, Metric, SchemaEntry, export_name


class TestInferValueType(unittest.TestCase):
    """Test cases for value type inference."""

    def test_types(self):
        self.assertEqual(infer_value_type(42), 'long')
        self.assertEqual(infer_value_type(4.2), 'float')
        self.assertEqual(infer_value_type('up'), 'string')
        self.assertEqual(infer_value_type(True), 'boolean')
        self.assertEqual(infer_value_type(False), 'boolean')

    def test_unknown_defaults_to_string(self):
        self.assertEqual(infer_value_type(None), 'string')
        self.assertEqual(infer_value_type([1, 2]), 'string')


class TestSeriesNames(unittest.TestCase):
    """Test cases for series name extraction."""

    def test_from_line_protocol(self):
        points = b"cpu,host=h1 value=123\ngpu,region=g1 value=123\ntest,host=h1 value=123\nmem,host=h1 value=123"
        self.assertEqual(series_from_line_protocol(points), ['cpu', 'gpu', 'test', 'mem'])

    def test_line_without_tags_is_ignored(self):
        points = b"cpu value=1\nmem,host=h1 value=2\n\nmem,host=h2 value=3\n"
        self.assertEqual(series_from_line_protocol(points), ['mem'])

    def test_from_metrics_first_seen_order(self):
        metrics = [Metric('mem'), Metric('cpu'), Metric('mem'), Metric('disk')]
        self.assertEqual(series_names(metrics), ['mem', 'cpu', 'disk'])


class TestExtractSchema(unittest.TestCase):
    """Test cases for extract_schema()."""

    def setUp(self):
        self.metrics = [
            Metric('cpu', {'host': 'h1'}, {'usage': 0.5, 'cores': 4}, 1),
            Metric('cpu', {'host': 'h2', 'dc': 'nb'}, {'usage': 1}, 2),
            Metric('mem', {'host': 'h1'}, {'ok': True, 'state': 'fine'}, 1),
        ]

    def test_namespaced_keys(self):
        schema = extract_schema(self.metrics)
        self.assertEqual(schema.series, ['cpu', 'mem'])
        self.assertEqual(schema.tag_keys, ['cpu_host', 'cpu_dc', 'mem_host'])
        self.assertEqual(schema.field_types, {
            'cpu_usage': 'float',
            'cpu_cores': 'long',
            'mem_ok': 'boolean',
            'mem_state': 'string',
        })

    def test_unsafe_key_characters(self):
        schema = extract_schema([Metric('cpu', {'data center': 'nb'}, {'a=b': 1}, 1)])
        self.assertEqual(schema.tag_keys, ['cpu_data_center'])
        self.assertEqual(schema.field_types, {'cpu_a_b': 'long'})
        self.assertEqual(schema.per_series['cpu'].fields, {'a=b'})

    def test_per_series_union(self):
        schema = extract_schema(self.metrics)
        self.assertEqual(schema.per_series['cpu'].tags, {'host', 'dc'})
        self.assertEqual(schema.per_series['cpu'].fields, {'usage', 'cores'})
        self.assertEqual(schema.per_series['mem'].fields, {'ok', 'state'})

    def test_empty(self):
        schema = extract_schema([])
        self.assertEqual(schema.series, [])
        self.assertEqual(schema.field_types, {})


class TestModels(unittest.TestCase):
    """Test cases for wire forms of the models."""

    def test_schema_entry_round_trip(self):
        entry = SchemaEntry.from_dict({'key': 'cpu_host', 'valtype': 'string', 'required': True})
        self.assertEqual(entry.to_dict(), {'key': 'cpu_host', 'valtype': 'string', 'required': True})

    def test_export_spec(self):
        spec = ExportSpec('monitor', 'cpu', tags={'host': '#cpu_host'}, fields={'usage': '#cpu_usage'})
        self.assertEqual(spec.to_dict(), {
            'destRepoName': 'monitor',
            'seriesName': 'cpu',
            'tags': {'host': '#cpu_host'},
            'fields': {'usage': '#cpu_usage'},
            'timestamp': '#timestamp',
        })
        self.assertEqual(export_name('cpu'), 'export_cpu_toTSDB')


class TestLineProtocol(unittest.TestCase):
    """Test cases for the line protocol parser."""

    def test_basic(self):
        metric = parse_line('cpu,host=h1,region=nb usage=0.5,cores=4i,up=true,name="box 1" 1500000000000000000')
        self.assertEqual(metric.name, 'cpu')
        self.assertEqual(metric.tags, {'host': 'h1', 'region': 'nb'})
        self.assertEqual(metric.fields, {'usage': 0.5, 'cores': 4, 'up': True, 'name': 'box 1'})
        self.assertEqual(metric.timestamp, 1500000000000000000)

    def test_escapes(self):
        metric = parse_line(r'disk\ io,path=/var\,log value=1 10')
        self.assertEqual(metric.name, 'disk io')
        self.assertEqual(metric.tags, {'path': '/var,log'})

    def test_quoted_string_with_separators(self):
        metric = parse_line('log msg="a=b, c d" 5')
        self.assertEqual(metric.fields, {'msg': 'a=b, c d'})

    def test_no_tags(self):
        metric = parse_line('cpu value=123 7')
        self.assertEqual(metric.tags, {})
        self.assertEqual(metric.fields, {'value': 123.0})

    def test_default_timestamp(self):
        metric = parse_line('cpu value=1', default_timestamp=99)
        self.assertEqual(metric.timestamp, 99)

    def test_malformed(self):
        for line in ('cpu', 'cpu,host value=1', 'cpu value=abc', 'cpu value="open'):
            with self.assertRaises(LineProtocolError):
                parse_line(line)

    def test_parse_lines_skips_blank_comments_and_garbage(self):
        lines = ['# comment\n', '\n', 'cpu value=1 1\n', 'garbage\n', 'mem value=2 2\n']
        metrics = parse_lines(lines)
        self.assertEqual([m.name for m in metrics], ['cpu', 'mem'])

    def test_parse_lines_strict(self):
        with self.assertRaises(LineProtocolError):
            parse_lines(['cpu value=1 1', 'garbage'], strict=True)


if __name__ == '__main__':
    logging.basicConfig(level=logging.ERROR)
    unittest.main()
