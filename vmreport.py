# vmreport.py - vCenter VM Info Report Module
# Version 1.0 - October 2026
# Author - HOL Core Team
# Maps a VM configuration to display records and renders the text report

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from pyVmomi import vim

#==============================================================================
# CONSTANTS
#==============================================================================

KB_PER_GB = 1024 * 1024
MB_PER_GB = 1024

EFI_FIRMWARE = vim.vm.GuestOsDescriptor.FirmwareType.efi

INDENT = '    '

ESCAPES = {
    '\a': r'\a',
    '\b': r'\b',
    '\f': r'\f',
    '\n': r'\n',
    '\r': r'\r',
    '\t': r'\t',
    '\v': r'\v',
    '\\': r'\\',
    '"': r'\"',
}

#==============================================================================
# DATA CLASSES
#==============================================================================

class BootOption(Enum):
    BIOS = 'BIOS'
    UEFI = 'UEFI'


@dataclass(frozen=True)
class DiskRecord:
    """A flat (version 2) virtual disk"""
    backing_file: str
    capacity_gb: float


@dataclass(frozen=True)
class VMRecord:
    """Display view of a VM configuration"""
    uuid: str
    cpu_count: int
    memory_gb: float
    boot_option: BootOption
    disks: Tuple[DiskRecord, ...] = ()

#==============================================================================
# CONFIGURATION MAPPER
#==============================================================================

def is_virtual_disk(device) -> bool:
    return isinstance(device, vim.vm.device.VirtualDisk)


def has_flat_ver2_backing(disk) -> bool:
    return isinstance(disk.backing, vim.vm.device.VirtualDisk.FlatVer2BackingInfo)


def map_boot_option(firmware) -> BootOption:
    """
    Map the firmware indicator to a boot option

    Only an exact match on the EFI firmware type is UEFI. Anything else,
    including an empty or unknown value, is BIOS.
    """
    if firmware == EFI_FIRMWARE:
        return BootOption.UEFI
    return BootOption.BIOS


def map_disk(device) -> Optional[DiskRecord]:
    """Return a DiskRecord for a flat-v2 virtual disk, None for anything else"""
    if not is_virtual_disk(device) or not has_flat_ver2_backing(device):
        return None
    return DiskRecord(
        backing_file=device.backing.fileName,
        capacity_gb=(device.capacityInKB or 0) / KB_PER_GB
    )


def map_vm_config(config) -> VMRecord:
    """
    Build a VMRecord from a vim.vm.ConfigInfo

    Devices that are not flat-v2 virtual disks are skipped. Disk order follows
    the device order reported by vCenter.

    :param config: vim.vm.ConfigInfo
    :return: VMRecord
    """
    hardware = config.hardware
    disks = []
    for device in hardware.device or []:
        disk = map_disk(device)
        if disk is not None:
            disks.append(disk)

    return VMRecord(
        uuid=config.uuid,
        cpu_count=hardware.numCPU,
        memory_gb=(hardware.memoryMB or 0) / MB_PER_GB,
        boot_option=map_boot_option(config.firmware),
        disks=tuple(disks)
    )

#==============================================================================
# REPORT RENDERER
#==============================================================================

def escape_char(ch) -> str:
    if ch in ESCAPES:
        return ESCAPES[ch]
    if ch.isprintable():
        return ch
    code = ord(ch)
    if code < 0x20 or code == 0x7f:
        return f'\\x{code:02x}'
    if code < 0x10000:
        return f'\\u{code:04x}'
    return f'\\U{code:08x}'


def quote(value) -> str:
    """
    Double-quote a value the way Go's %q verb does

    Quotes and backslashes get a backslash, C escapes are used for \\a \\b
    \\f \\n \\r \\t \\v, other ASCII control characters become \\xHH and
    non-printable characters beyond ASCII become \\uHHHH or \\UHHHHHHHH.
    """
    text = '' if value is None else str(value)
    return '"' + ''.join(escape_char(ch) for ch in text) + '"'


def render_report(record: VMRecord, host: str, thumbprint: Optional[str] = None) -> List[str]:
    """
    Render the report lines for a VM

    The thumbprint line is left out when no thumbprint is available.

    :param record: VMRecord
    :param host: vCenter host (no scheme)
    :param thumbprint: formatted certificate thumbprint or None
    :return: list of lines without trailing newlines
    """
    lines = [
        f'uuid: {quote(record.uuid)}',
        f'CPU count: {record.cpu_count}',
        f'Memory: {record.memory_gb:.2f} GB',
        f'Boot Option: {record.boot_option.value}',
    ]

    for index, disk in enumerate(record.disks, start=1):
        lines.append(f'Disk {index}:')
        lines.append(f'{INDENT}Backing File: {quote(disk.backing_file)}')
        lines.append(f'{INDENT}Capacity: {disk.capacity_gb:.2f} GB')

    if thumbprint:
        lines.append(f'thumbprint: {quote(thumbprint)}')

    lines.append(f'url: {quote(f"https://{host}")}')
    return lines


def print_report(lines):
    for line in lines:
        print(line)
