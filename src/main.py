"""Main API handler: Flask endpoints and CLI for OE matching."""

import datetime
import io
import logging
import os
import traceback
from typing import Any, Dict, Tuple
from flask import Flask, request, jsonify, send_file
from werkzeug.exceptions import RequestEntityTooLarge
import click

from .config_manager import ConfigManager
from .pipeline import export_to_excel, process_files
from .utils.exceptions import (
    AuthenticationError,
    ConfigurationError,
    FileProcessingError,
    OeMatcherError,
    ValidationError,
)
from .utils.validation import ensure_xlsx_filename, validate_file_extension

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Initialize components
config_manager = ConfigManager()
app_config = config_manager.get_app_config()

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

# Configure Flask app
app = Flask(__name__)
app.config["MAX_CONTENT_LENGTH"] = app_config["max_file_size_mb"] * 1024 * 1024


def setup_logging() -> None:
    """Setup logging configuration."""
    log_level = app_config.get("log_level", "INFO").upper()
    verbose_logging = os.environ.get("VERBOSE_LOGGING", "true").lower() == "true"

    if not verbose_logging and log_level in ["DEBUG", "INFO"]:
        log_level = "WARNING"

    logging.getLogger().setLevel(getattr(logging, log_level, logging.INFO))

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logging.getLogger().addHandler(console_handler)

    if not verbose_logging:
        logging.getLogger("werkzeug").setLevel(logging.WARNING)
        logging.getLogger("PIL").setLevel(logging.WARNING)


def authenticate_request() -> bool:
    """Authenticate API request."""
    if app_config.get("development_mode", False):
        logger.debug("Authentication bypassed in development mode")
        return True

    api_key = app_config.get("api_key")
    if not api_key:
        return True

    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        token = auth_header.split(" ", 1)[1]
        return token == api_key

    request_key = request.args.get("api_key") or request.form.get("api_key")
    return request_key == api_key


def create_error_response(
    error: Exception, status_code: int = 500
) -> Tuple[Dict[str, Any], int]:
    """Create standardized error response."""
    error_response = {
        "success": False,
        "error": {
            "type": type(error).__name__,
            "message": str(error),
            "code": status_code,
        },
    }

    if getattr(error, "error_code", None):
        error_response["error"]["error_code"] = error.error_code

    if app_config.get("development_mode", False):
        error_response["error"]["traceback"] = traceback.format_exc()

    logger.error(f"API Error ({status_code}): {error}")
    return error_response, status_code


def _status_for(error: Exception) -> int:
    if isinstance(error, (ValidationError, ConfigurationError)):
        return 400
    if isinstance(error, AuthenticationError):
        return 401
    if isinstance(error, FileProcessingError):
        return 422
    return 500


def _get_upload(field: str, allowed_extensions):
    upload = request.files.get(field)
    if upload is None or not upload.filename:
        raise ValidationError(f"Missing required file: {field}")
    if not validate_file_extension(upload.filename, allowed_extensions):
        raise ValidationError(
            f"Unsupported file type for {field}: {upload.filename}"
        )
    return upload


def _run_matching():
    """Read both uploads from the current request and match them."""
    reference = _get_upload("reference_file", ["xlsx", "xlsm"])
    query = _get_upload("query_file", app_config["allowed_extensions"])

    config = config_manager.load_config()
    results = process_files(
        reference.stream, query.stream, config, query_filename=query.filename
    )
    return results, config


@app.errorhandler(RequestEntityTooLarge)
def handle_file_too_large(error):
    """Handle file size too large error."""
    content_length = request.headers.get("Content-Length", "Unknown")
    logger.error(f"413 Error - Request too large: {request.path} ({content_length} bytes)")
    return create_error_response(
        ValidationError(
            f"Request size exceeds maximum allowed size of {app_config['max_file_size_mb']}MB"
        ),
        413,
    )


@app.before_request
def before_request():
    """Pre-request authentication."""
    logger.info(f"REQUEST: {request.method} {request.path}")
    if request.endpoint == "health":
        return

    if not authenticate_request():
        error_response, status_code = create_error_response(
            AuthenticationError("Invalid API key"), 401
        )
        return jsonify(error_response), status_code


@app.route("/api/v1/health", methods=["GET"])
def health() -> Tuple[Dict[str, Any], int]:
    """Health check endpoint."""
    return {
        "success": True,
        "status": "healthy",
        "version": "0.1.0",
        "environment": os.getenv("ENVIRONMENT", "development"),
        "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
    }, 200


@app.route("/api/v1/match", methods=["POST"])
def match_files() -> Tuple[Dict[str, Any], int]:
    """Match a query file against a reference file and return JSON rows."""
    try:
        include_images = request.form.get("include_images", "false").lower() == "true"
        results, _ = _run_matching()
        return {
            "success": True,
            "total": len(results),
            "matched": sum(1 for row in results if row.is_match),
            "results": [row.to_dict(include_image_data=include_images) for row in results],
        }, 200
    except OeMatcherError as e:
        return create_error_response(e, _status_for(e))
    except Exception as e:
        logger.exception("Unexpected error during matching")
        return create_error_response(e, 500)


@app.route("/api/v1/export", methods=["POST"])
def export_files():
    """Match a query file against a reference file and download the xlsx."""
    try:
        results, config = _run_matching()
        content = export_to_excel(results, layout=config.get("export"))
        filename = ensure_xlsx_filename(
            request.form.get("output_filename", "match_results.xlsx")
        )
        return send_file(
            io.BytesIO(content),
            mimetype=XLSX_MIMETYPE,
            as_attachment=True,
            download_name=filename,
        )
    except OeMatcherError as e:
        return create_error_response(e, _status_for(e))
    except Exception as e:
        logger.exception("Unexpected error during export")
        return create_error_response(e, 500)


# CLI interface
@click.group()
def cli():
    """OE matcher CLI."""
    setup_logging()


@cli.command("match")
@click.option(
    "--reference-file",
    "-r",
    required=True,
    type=click.Path(exists=True),
    help="Path to the reference workbook",
)
@click.option(
    "--query-file",
    "-q",
    required=True,
    type=click.Path(exists=True),
    help="Path to the query workbook or CSV",
)
@click.option("--output-file", "-o", required=False, help="Output xlsx file name")
@click.option(
    "--config-file",
    "-c",
    required=False,
    type=click.Path(exists=True),
    help="Path to matching configuration JSON file",
)
def match_cli(reference_file, query_file, output_file=None, config_file=None):
    """Match query identifiers and export the annotated workbook."""
    try:
        if config_file:
            config = config_manager.load_config_file(config_file)
        else:
            config = config_manager.load_config()

        results = process_files(reference_file, query_file, config)
        matched = sum(1 for row in results if row.is_match)
        click.echo(f"Matched {matched} of {len(results)} query identifiers")

        if not output_file:
            output_file = f"matched_{os.path.splitext(os.path.basename(query_file))[0]}.xlsx"
        export_to_excel(results, output_file, layout=config.get("export"))
        click.echo(f"Export written to: {output_file}")
    except OeMatcherError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)


@cli.command("init-config")
@click.option(
    "--name", "-n", default="default_config", help="Name of the configuration to write"
)
@click.option("--force", is_flag=True, help="Overwrite an existing configuration file")
def init_config_cli(name: str, force: bool) -> None:
    """Write the default matching configuration as an editable JSON file."""
    config_file = os.path.join(config_manager.config_dir, f"{name}.json")
    if os.path.exists(config_file) and not force:
        click.echo(f"Error: {config_file} already exists, use --force to overwrite", err=True)
        raise SystemExit(1)

    try:
        config_file = config_manager.save_config(config_manager.get_default_config(), name)
    except OeMatcherError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)
    click.echo(f"Configuration written to: {config_file}")


@cli.command()
@click.option("--host", default=None, help="Host to bind to")
@click.option("--port", default=None, type=int, help="Port to bind to")
@click.option("--debug", is_flag=True, help="Enable debug mode")
def serve(host: str, port: int, debug: bool) -> None:
    """Start the Flask development server."""
    flask_config = app_config["flask_config"]
    host = host or flask_config["host"]
    port = port or flask_config["port"]

    logger.info(f"Starting OE matcher server on {host}:{port}")
    app.run(
        host=host,
        port=port,
        debug=debug or flask_config["debug"] or app_config.get("development_mode", False),
    )


if __name__ == "__main__":
    cli()
