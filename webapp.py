#!/usr/bin/env python3
"""
Flask HTTP trigger for the directory to SCIM sync
Suitable for schedulers and serverless HTTP functions
"""

import os
import logging
from flask import Flask, Response, request, jsonify

from core.errors import ScimSyncError, ConfigurationError
from core.runner import run_scim_sync
from core.sync import format_statistics
from utils.config import Config, to_boolean

app = Flask(__name__)


def setup_logging():
    """Setup logging for the web application"""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler()]
    )


def optional_int(value):
    if value is None or value == '':
        return None
    try:
        return int(value)
    except ValueError:
        return -1


@app.route('/sync', methods=['POST'])
def sync():
    """Run one sync and return the statistics as text"""
    config = Config()

    # Overrides may only make a run safer or more verbose
    destructive = optional_int(request.args.get('destructive'))
    if destructive is not None:
        destructive = min(destructive, config.destructive)
    verbose = to_boolean(request.args.get('verbose'))

    try:
        stat = run_scim_sync(config, verbose=verbose, destructive=destructive)
    except ConfigurationError as e:
        app.logger.error(f"Sync configuration error: {e}")
        return Response(f"{e}\n", status=500, mimetype='text/plain')
    except ScimSyncError as e:
        app.logger.error(f"Sync failed: {e}")
        return Response(f"Sync failed: {e}\n", status=500, mimetype='text/plain')

    app.logger.info(f"Sync completed with {stat.total_changes} change(s)")
    return Response(format_statistics(stat), status=200, mimetype='text/plain')


@app.route('/health')
def health_check():
    """Health check endpoint"""
    config = Config()
    missing_vars = config.get_missing_vars()

    return jsonify({
        'status': 'healthy' if not missing_vars else 'configuration_error',
        'config_valid': not missing_vars,
        'missing_vars': missing_vars,
        'source': config.source_type,
    })


def check_configuration(config: Config) -> bool:
    """Log which configuration areas are incomplete at startup"""
    valid = True
    if not config.validate_scim_config():
        app.logger.warning(f"Missing SCIM configuration: {', '.join(config.get_missing_scim_vars())}")
        valid = False
    if not config.validate_source_config():
        app.logger.warning(f"Missing {config.source_type} source configuration: "
                           f"{', '.join(config.get_missing_source_vars())}")
        valid = False
    if valid:
        app.logger.info("Configuration validated successfully")
    return valid


if __name__ == '__main__':
    setup_logging()

    check_configuration(Config())

    port = int(os.environ.get('PORT', 8080))
    debug = os.environ.get('FLASK_DEBUG', 'False').lower() == 'true'
    app.run(host='0.0.0.0', port=port, debug=debug)
