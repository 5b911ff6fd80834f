# -----------------------------------------------------------------------------
# Copyright (c) 2025 vSAN Perf Collector contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------

import os
import logging
from datetime import datetime, timezone
from urllib.parse import urlparse


def utc_now():
    return datetime.now(timezone.utc)


def vcenter_host(vcenter):
    """Host part of a vCenter URL or host name, used for the 'vcenter' tag."""
    if not vcenter:
        return ''
    parsed = urlparse(vcenter if '://' in vcenter else f'https://{vcenter}')
    return parsed.netloc or vcenter


def get_json_output_path(measurement, outdir=None, loop_iteration=None):
    """Generate JSON output file path with timestamp for one measurement."""
    LOG = logging.getLogger(__name__)

    directory = outdir if outdir else '.'
    os.makedirs(directory, exist_ok=True)
    timestamp = utc_now().strftime('%Y%m%d%H%M')

    if loop_iteration is not None:
        filename = f"{measurement}_{timestamp}_{loop_iteration:04d}.json"
    else:
        filename = f"{measurement}_{timestamp}.json"
    path = os.path.join(directory, filename)
    LOG.debug(f"JSON output path for {measurement}: {path}")
    return path
