#!/usr/bin/env python3
# conftest.py - vCenter VM Info Pytest Configuration and Fixtures
# Version 1.0 - October 2026
# Author - HOL Core Team
# Shared fixtures for all test modules

import pytest
import os
import sys
import datetime
import tempfile
from unittest.mock import MagicMock, patch
from configparser import ConfigParser

from cryptography import x509
from cryptography.x509.oid import NameOID
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from pyVmomi import vim

# Add parent directory to path for imports
parent_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, parent_dir)

#==============================================================================
# HELPERS - pyVmomi data objects
#==============================================================================

def make_flat_disk(file_name, capacity_kb, key=2000):
    """Build a VirtualDisk with a flat version 2 backing"""
    return vim.vm.device.VirtualDisk(
        key=key,
        capacityInKB=capacity_kb,
        backing=vim.vm.device.VirtualDisk.FlatVer2BackingInfo(
            fileName=file_name,
            diskMode='persistent'
        )
    )


def make_sparse_disk(file_name, capacity_kb, key=2100):
    """Build a VirtualDisk with a sparse version 2 backing"""
    return vim.vm.device.VirtualDisk(
        key=key,
        capacityInKB=capacity_kb,
        backing=vim.vm.device.VirtualDisk.SparseVer2BackingInfo(
            fileName=file_name,
            diskMode='persistent'
        )
    )


def make_config(uuid='abc-123', num_cpu=2, memory_mb=2048, firmware='efi', devices=None):
    """Build a vim.vm.ConfigInfo"""
    hardware = vim.vm.VirtualHardware(
        numCPU=num_cpu,
        memoryMB=memory_mb,
        device=list(devices or [])
    )
    config = vim.vm.ConfigInfo(uuid=uuid, hardware=hardware)
    if firmware is not None:
        config.firmware = firmware
    return config


def make_named(name, **attrs):
    """MagicMock with a real .name attribute"""
    mock = MagicMock(**attrs)
    mock.name = name
    return mock


def make_service_instance(datacenters, vms):
    """
    Mock ServiceInstance whose container views return the given objects

    :param datacenters: objects returned for [vim.Datacenter]
    :param vms: objects returned for [vim.VirtualMachine]
    """
    si = MagicMock()
    content = si.RetrieveContent.return_value
    content.rootFolder = make_named('Datacenters')

    def create_view(root, vimtype, recursive):
        view = MagicMock()
        view.view = list(datacenters) if vimtype == [vim.Datacenter] else list(vms)
        return view

    content.viewManager.CreateContainerView.side_effect = create_view
    return si

#==============================================================================
# FIXTURES - VM configuration
#==============================================================================

@pytest.fixture
def vm_config():
    """End-to-end fixture VM: 2 vCPU, 2 GB, EFI, one 127 GB flat disk"""
    return make_config(
        devices=[make_flat_disk('[ds] a.vmdk', 133169152)]
    )


@pytest.fixture
def mixed_devices():
    """Three flat disks interleaved with devices that are not reported"""
    return [
        vim.vm.device.VirtualIDEController(key=200),
        make_flat_disk('[ds1] vm/vm.vmdk', 41943040, key=2000),
        vim.vm.device.VirtualVmxnet3(key=4000),
        make_sparse_disk('[ds1] vm/sparse.vmdk', 1048576),
        make_flat_disk('[ds2] vm/vm_1.vmdk', 10485760, key=2001),
        vim.vm.device.VirtualCdrom(key=3000),
        make_flat_disk('[ds2] vm/vm_2.vmdk', 524288, key=2002),
    ]

#==============================================================================
# FIXTURES - Mock vCenter
#==============================================================================

@pytest.fixture
def datacenter():
    return make_named('Datacenter-A', vmFolder=make_named('vm'))


@pytest.fixture
def mock_vm(vm_config):
    return make_named('app-01', config=vm_config)


@pytest.fixture
def mock_si(datacenter, mock_vm):
    """ServiceInstance with a single datacenter and a single VM"""
    return make_service_instance([datacenter], [mock_vm, make_named('app-02')])


@pytest.fixture
def mock_connect(mock_si):
    """Patch pyVim.connect as used by vmfunctions"""
    with patch('vmfunctions.connect') as mock_conn:
        mock_conn.SmartConnect.return_value = mock_si
        yield mock_conn

#==============================================================================
# FIXTURES - Configuration
#==============================================================================

@pytest.fixture
def env():
    """Complete environment for a run"""
    return {
        'VCENTER_HOST': 'vcsa-01a.site-a.vcf.lab',
        'VCENTER_USERNAME': 'administrator@vsphere.local',
        'VCENTER_PASSWORD': 'MOCK_PW_CHECK_VALUE',
        'VM_NAME': 'app-01',
    }


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def temp_config_ini(temp_dir):
    """Create a temporary vminfo.ini file"""
    config_path = os.path.join(temp_dir, 'vminfo.ini')

    config = ConfigParser(interpolation=None)
    config.add_section('VCENTER')
    config.set('VCENTER', 'host', 'vc-mgmt-a.site-a.vcf.lab')
    config.set('VCENTER', 'username', 'ini-user@vsphere.local')
    config.set('VCENTER', 'password', 'ini%password')
    config.set('VCENTER', 'vm_name', 'ini-vm')
    config.set('VCENTER', 'port', '8443')

    with open(config_path, 'w') as f:
        config.write(f)

    return config_path

#==============================================================================
# FIXTURES - Certificates
#==============================================================================

@pytest.fixture(scope='session')
def self_signed_der():
    """DER encoded self-signed certificate"""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, 'vcsa-01a.site-a.vcf.lab')])
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(datetime.datetime(2026, 1, 1))
        .not_valid_after(datetime.datetime(2028, 1, 1))
        .sign(key, hashes.SHA256())
    )
    return cert.public_bytes(serialization.Encoding.DER)


@pytest.fixture
def mock_tls(self_signed_der):
    """
    Patch the socket and TLS context used by get_thumbprint

    Yields (create_connection mock, tls socket mock).
    """
    with patch('vmfunctions.socket.create_connection') as mock_create, \
            patch('vmfunctions._unverified_context') as mock_context:
        tls_sock = mock_context.return_value.wrap_socket.return_value.__enter__.return_value
        tls_sock.getpeercert.return_value = self_signed_der
        yield mock_create, tls_sock

#==============================================================================
# MARKERS
#==============================================================================

def pytest_configure(config):
    """Configure custom markers"""
    config.addinivalue_line(
        "markers", "integration: marks tests that run the full CLI flow"
    )
    config.addinivalue_line(
        "markers", "network: marks tests that require network access"
    )
