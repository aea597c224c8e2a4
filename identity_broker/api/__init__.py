"""HTTP surface: Flask blueprints, response envelope and error handlers."""
