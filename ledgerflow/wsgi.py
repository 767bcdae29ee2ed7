"""
LedgerFlow - WSGI Application for Gunicorn Deployment

Validates the environment before Django is initialized so a misconfigured
production deploy fails at boot instead of on the first request.
"""

import os
import sys
import logging

# Configure logging early for startup diagnostics
logging.basicConfig(
    level=logging.INFO,
    format='[%(asctime)s] %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "ledgerflow.settings")

try:
    from ledgerflow.env_validation import validate_env
    validate_env()
except Exception as e:
    logger.critical(f"Environment validation failed: {e}")
    sys.exit(1)

from django.core.wsgi import get_wsgi_application  # noqa: E402

application = get_wsgi_application()
