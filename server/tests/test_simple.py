"""Simple test to verify pytest setup."""

import tours_api


def test_version():
    assert tours_api.__version__


def test_import_app():
    """Test that we can import the app module."""
    from tours_api.main import create_app
    app = create_app()
    assert app is not None
    paths = app.openapi()["paths"]
    assert "/api/v1/tours" in paths
    assert "/api/v1/tours/monthly-plan/{year}" in paths
