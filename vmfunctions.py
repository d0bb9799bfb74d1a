# vmfunctions.py - vCenter VM Info Core Functions Library
# Version 1.0 - October 2026
# Author - HOL Core Team
# Settings, vCenter session handling, VM discovery and TLS thumbprint probing

import os
import sys
import ssl
import socket
import logging
from configparser import ConfigParser
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Mapping, Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from pyVim import connect
from pyVmomi import vim, vmodl

logger = logging.getLogger(__name__)

#==============================================================================
# STATIC VARIABLES
#==============================================================================

default_port = 443
connect_timeout = 30  # seconds, TCP connect for the thumbprint probe
sdk_path = '/sdk'

config_section = 'VCENTER'

# Environment variable -> settings field
env_vars = {
    'VCENTER_HOST': 'host',
    'VCENTER_USERNAME': 'username',
    'VCENTER_PASSWORD': 'password',
    'VM_NAME': 'vm_name',
}
port_env_var = 'VCENTER_PORT'

log_format = '[%(asctime)s] %(levelname)s - %(message)s'
log_datefmt = '%Y-%m-%d %H:%M:%S'

#==============================================================================
# EXCEPTIONS
#==============================================================================

class VMInfoError(Exception):
    """Base class for all vminfo errors"""


class ConfigurationError(VMInfoError):
    """A required setting is missing or invalid"""


class SessionError(VMInfoError):
    """Authentication or transport failure against the vCenter SDK"""


class VMLookupError(VMInfoError, LookupError):
    """Default datacenter or named VM could not be resolved"""


class FingerprintError(VMInfoError):
    """TLS connect or handshake failed while probing the server certificate"""

#==============================================================================
# OUTPUT AND LOGGING
#==============================================================================

def setup_logging(verbose=False):
    """
    Configure the root logger to write to stderr

    stdout is reserved for the report itself.

    :param verbose: DEBUG when True, WARNING otherwise
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=log_format,
        datefmt=log_datefmt,
        stream=sys.stderr,
        force=True
    )

#==============================================================================
# CONFIGURATION
#==============================================================================

@dataclass(frozen=True)
class Settings:
    """Connection settings for a single run"""
    host: str
    username: str
    password: str = field(repr=False)
    vm_name: str
    port: int = default_port

    @property
    def sdk_url(self) -> str:
        return f'https://{self.host}:{self.port}{sdk_path}'


def get_config_value(config: ConfigParser, option: str, fallback: str = '') -> str:
    """
    Get an option from the [VCENTER] section

    Values starting with '#' or ';' are treated as commented out.

    :param config: Parsed INI file
    :param option: Option name
    :param fallback: Returned when the option is absent or commented out
    :return: Stripped value or fallback
    """
    if not config.has_option(config_section, option):
        return fallback

    value = config.get(config_section, option).strip()
    if value.startswith('#') or value.startswith(';'):
        return fallback
    return value


def read_config_file(path: str) -> ConfigParser:
    """
    Read an INI file holding a [VCENTER] section

    :param path: Path to the INI file
    :return: ConfigParser
    :raises ConfigurationError: if the file does not exist, cannot be read or cannot be parsed
    """
    if not os.path.isfile(path):
        raise ConfigurationError(f'Config file not found: {path}')

    # Passwords may contain '%'
    config = ConfigParser(interpolation=None)
    try:
        with open(path) as f:
            config.read_file(f)
    except OSError as e:
        raise ConfigurationError(f'Unable to read config file {path}: {e}') from e
    except Exception as e:
        raise ConfigurationError(f'Unable to parse config file {path}: {e}') from e
    return config


def parse_port(value) -> int:
    try:
        port = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f'Invalid port: {value!r}') from None
    if not 0 < port < 65536:
        raise ConfigurationError(f'Port out of range: {port}')
    return port


def load_settings(environ: Optional[Mapping[str, str]] = None,
                  config_file: Optional[str] = None,
                  port: Optional[int] = None) -> Settings:
    """
    Build the run settings from the environment and an optional INI file

    Environment variables win over the INI file and an explicit port wins
    over both. Empty values count as missing.

    :param environ: Environment mapping (defaults to os.environ)
    :param config_file: Optional path to an INI file with a [VCENTER] section
    :param port: Optional port override
    :return: Settings
    :raises ConfigurationError: if any required value is missing or invalid
    """
    if environ is None:
        environ = os.environ

    config = read_config_file(config_file) if config_file else ConfigParser()

    values = {}
    missing = []
    for env_name, field_name in env_vars.items():
        value = environ.get(env_name, '') or get_config_value(config, field_name)
        if not value:
            missing.append(env_name)
        values[field_name] = value

    if missing:
        raise ConfigurationError(
            f'Missing required settings (environment or [{config_section}] in config file): {", ".join(missing)}')

    if port is None:
        port = environ.get(port_env_var, '') or get_config_value(config, 'port') or default_port
    values['port'] = parse_port(port)

    return Settings(**values)

#==============================================================================
# VSPHERE OPERATIONS
#==============================================================================

def connect_vc(host, user, password, port=default_port):
    """
    Connect to a vCenter Server

    Certificate validation is disabled, matching the self-signed certificates
    most lab and on-prem vCenters still carry.

    :param host: vCenter hostname or IP
    :param user: Username
    :param password: Password
    :param port: SDK port
    :return: ServiceInstance
    :raises SessionError: on authentication or transport failure
    """
    try:
        si = connect.SmartConnect(
            host=host,
            user=user,
            pwd=password,
            port=port,
            disableSslCertValidation=True
        )
    except vim.fault.InvalidLogin as e:
        raise SessionError(f'Failed to connect to vCenter Server {host}: invalid login for {user}') from e
    except Exception as e:
        raise SessionError(f'Failed to connect to vCenter Server {host}: {e}') from e

    if si is None:
        raise SessionError(f'Failed to connect to vCenter Server {host}')

    logger.debug(f'Connected to {host}')
    return si


def disconnect_vc(si):
    """Log out of a vCenter session. Errors are logged, never raised."""
    try:
        connect.Disconnect(si)
        logger.debug('Disconnected from vCenter')
    except Exception as e:
        logger.debug(f'Error while disconnecting from vCenter: {e}')


@contextmanager
def vcenter_session(settings: Settings):
    """
    Open a vCenter session that is always logged out on exit

    :param settings: Settings
    :yields: ServiceInstance
    """
    logger.info(f'Connecting to vCenter with URL: {settings.sdk_url} as {settings.username}')
    si = connect_vc(settings.host, settings.username, settings.password, port=settings.port)
    try:
        yield si
    finally:
        disconnect_vc(si)


def get_all_objs(si_content, vimtype, root=None):
    """
    Return the managed objects of the given types below root

    :param si_content: serviceinstance.content
    :param vimtype: list of VIM types, e.g. [vim.VirtualMachine]
    :param root: container to search (defaults to the root folder)
    :return: list of managed objects
    """
    if root is None:
        root = si_content.rootFolder
    container = si_content.viewManager.CreateContainerView(root, vimtype, True)
    try:
        return list(container.view)
    finally:
        container.Destroy()


def get_default_datacenter(si):
    """
    Return the default datacenter

    The default is only defined when the inventory holds exactly one
    datacenter.

    :param si: ServiceInstance
    :return: vim.Datacenter
    :raises VMLookupError: if there is no datacenter or more than one
    :raises SessionError: if the connection drops during the lookup
    """
    try:
        datacenters = get_all_objs(si.RetrieveContent(), [vim.Datacenter])
    except vmodl.MethodFault as e:
        raise VMLookupError(f'Failed to find default datacenter: {e.msg}') from e
    except Exception as e:
        raise SessionError(f'Lost connection to vCenter while finding default datacenter: {e}') from e

    if not datacenters:
        raise VMLookupError('Failed to find default datacenter: no datacenter found')
    if len(datacenters) > 1:
        raise VMLookupError('Failed to find default datacenter: '
                            f'{len(datacenters)} datacenters found, default datacenter is ambiguous')

    logger.debug(f'Using datacenter {datacenters[0].name}')
    return datacenters[0]


def get_vm(si, datacenter, name):
    """
    Get a VM by exact name within a datacenter

    :param si: ServiceInstance
    :param datacenter: vim.Datacenter to search
    :param name: VM display name
    :return: vim.VirtualMachine
    :raises VMLookupError: if no VM or more than one VM carries the name
    :raises SessionError: if the connection drops during the lookup
    """
    try:
        vms = get_all_objs(si.RetrieveContent(), [vim.VirtualMachine], root=datacenter.vmFolder)
        matches = [vm for vm in vms if vm.name == name]
    except vmodl.MethodFault as e:
        raise VMLookupError(f'Failed to find VM "{name}": {e.msg}') from e
    except Exception as e:
        raise SessionError(f'Lost connection to vCenter while finding VM "{name}": {e}') from e

    if not matches:
        raise VMLookupError(f'Failed to find VM "{name}": vm not found')
    if len(matches) > 1:
        raise VMLookupError(f'Failed to find VM "{name}": name resolves to {len(matches)} virtual machines')

    logger.debug(f'Found VM {name}')
    return matches[0]


def get_vm_config(vm):
    """
    Read the config property of a VM

    :param vm: vim.VirtualMachine
    :return: vim.vm.ConfigInfo
    :raises VMLookupError: if the property read faults or the VM has no config
    :raises SessionError: if the connection drops during the read
    """
    try:
        config = vm.config
    except vmodl.MethodFault as e:
        raise VMLookupError(f'Failed to get VM properties: {e.msg}') from e
    except Exception as e:
        raise SessionError(f'Lost connection to vCenter while reading VM properties: {e}') from e

    if config is None:
        raise VMLookupError(f'Failed to get VM properties: {vm.name} has no configuration (inaccessible or orphaned)')
    return config

#==============================================================================
# CERTIFICATE THUMBPRINT
#==============================================================================

def format_thumbprint(digest: bytes) -> str:
    """
    Format a digest as colon separated uppercase hex pairs

    :param digest: raw digest bytes
    :return: e.g. '70:7D:02:...'
    """
    return ':'.join(f'{b:02X}' for b in digest)


def _unverified_context():
    # Trust-on-first-use: the thumbprint is read, not validated
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


def get_thumbprint(host, port=default_port, timeout=connect_timeout):
    """
    Get the SHA-1 thumbprint of the leaf certificate a host presents

    The certificate chain is NOT validated.

    :param host: hostname or IP
    :param port: TLS port
    :param timeout: TCP connect timeout in seconds
    :return: colon separated uppercase hex thumbprint
    :raises FingerprintError: on connect, handshake or certificate parse failure
    """
    try:
        with socket.create_connection((host, port), timeout=timeout) as sock:
            with _unverified_context().wrap_socket(sock, server_hostname=host) as tls_sock:
                der = tls_sock.getpeercert(binary_form=True)
    except ssl.SSLError as e:
        raise FingerprintError(f'TLS handshake with {host}:{port} failed: {e}') from e
    except OSError as e:
        raise FingerprintError(f'Failed to connect to {host}:{port}: {e}') from e

    if not der:
        raise FingerprintError(f'{host}:{port} presented no certificate')

    try:
        cert = x509.load_der_x509_certificate(der)
    except ValueError as e:
        raise FingerprintError(f'Unable to parse certificate from {host}:{port}: {e}') from e

    return format_thumbprint(cert.fingerprint(hashes.SHA1()))
