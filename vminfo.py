#!/usr/bin/env python3
# vminfo.py - vCenter VM Info Report
# Version 1.0 - October 2026
# Author - HOL Core Team
# Prints the configuration of one VM and the vCenter certificate thumbprint

"""
vCenter VM Info - single VM configuration report

Reads the connection settings from the environment:
    VCENTER_HOST       vCenter hostname or IP (no scheme)
    VCENTER_USERNAME   vCenter user
    VCENTER_PASSWORD   vCenter password
    VM_NAME            exact display name of the VM
    VCENTER_PORT       optional, defaults to 443

Usage:
    python3 vminfo.py [--config vminfo.ini] [--port 443] [--verbose]

Exit codes:
    0   report printed (the thumbprint line may be missing)
    1   missing settings, connection/login failure or VM not found
"""

import sys
import logging
import argparse

import vmfunctions as vmf
import vmreport

__version__ = '1.0.0'

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        description='Print the configuration of a vCenter VM',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument('--config', type=str,
                        help=f'INI file with a [{vmf.config_section}] section (environment wins)')
    parser.add_argument('--port', type=int,
                        help=f'vCenter HTTPS port (default: {vmf.default_port})')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Enable verbose logging')
    parser.add_argument('--version', action='version',
                        version=f'%(prog)s {__version__}')
    return parser.parse_args(argv)


def fetch_vm_record(settings):
    """
    Look up the VM and map its configuration

    The session is logged out before returning or raising.

    :param settings: vmfunctions.Settings
    :return: vmreport.VMRecord
    """
    with vmf.vcenter_session(settings) as si:
        datacenter = vmf.get_default_datacenter(si)
        vm = vmf.get_vm(si, datacenter, settings.vm_name)
        return vmreport.map_vm_config(vmf.get_vm_config(vm))


def fetch_thumbprint(settings):
    """Return the vCenter thumbprint, or None when it cannot be read"""
    try:
        return vmf.get_thumbprint(settings.host, port=settings.port)
    except vmf.FingerprintError as e:
        logger.warning(f'Failed to retrieve thumbprint: {e}')
        return None


def main(argv=None, environ=None):
    """
    Main entry point

    :return: process exit code
    """
    args = parse_args(argv)
    vmf.setup_logging(args.verbose)

    try:
        settings = vmf.load_settings(environ, config_file=args.config, port=args.port)
    except vmf.ConfigurationError as e:
        logger.error(str(e))
        return 1

    try:
        record = fetch_vm_record(settings)
    except vmf.SessionError as e:
        logger.error(str(e))
        return 1
    except vmf.VMLookupError as e:
        logger.error(f'Error retrieving VM info: {e}')
        return 1

    thumbprint = fetch_thumbprint(settings)

    vmreport.print_report(vmreport.render_report(record, settings.host, thumbprint))
    return 0


def cli():
    sys.exit(main())


if __name__ == '__main__':
    cli()
