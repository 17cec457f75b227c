"""Tests for metric path normalization."""

from artifactci.core.metrics import PrometheusMiddleware


def _normalize(path):
    return PrometheusMiddleware(app=None)._normalize_path(path)


class TestNormalizePath:
    def test_view_paths_collapse(self):
        assert _normalize("/artifact/view/mmkal/artifact.ci/run/42/report/index.html") == "/artifact/view/{path}"

    def test_blob_paths_collapse(self):
        assert _normalize("/artifact/blob/mmkal/artifact.ci/42/1/build/a.txt") == "/artifact/blob/{path}"

    def test_uuid_ids(self):
        assert _normalize("/artifact/entries/4f1c2d3e-1111-2222-3333-444455556666") == "/artifact/entries/{id}"

    def test_numeric_ids(self):
        assert _normalize("/things/12345") == "/things/{id}"

    def test_static_paths_unchanged(self):
        assert _normalize("/health/ready") == "/health/ready"
