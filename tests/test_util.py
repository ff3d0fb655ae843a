import netifaces
import pytest

from broadlink_rm_protocol import MissingMacAddress, format_mac_address, get_local_ip_addresses, parse_mac_address
from broadlink_rm_protocol import util

INTERFACES = {
    'lo': {netifaces.AF_INET: [{'addr': '127.0.0.1'}]},
    'eth0': {
        netifaces.AF_INET: [{'addr': '192.168.1.10'}, {'addr': '192.168.1.11'}],
        netifaces.AF_INET6: [{'addr': 'fe80::1%eth0'}],
      },
    'wlan0': {netifaces.AF_INET6: [{'addr': 'fe80::2%wlan0'}]},
    'docker0': {netifaces.AF_INET: [{'addr': '172.17.0.1'}]},
}

@pytest.fixture
def fake_interfaces(monkeypatch):
    monkeypatch.setattr(util.netifaces, 'interfaces', lambda: list(INTERFACES))
    monkeypatch.setattr(util.netifaces, 'ifaddresses', lambda ifname: INTERFACES[ifname])

def test_local_addresses_are_ipv4_without_loopback(fake_interfaces):
    assert get_local_ip_addresses() == ['192.168.1.10', '192.168.1.11', '172.17.0.1']

def test_local_addresses_can_include_loopback(fake_interfaces):
    assert get_local_ip_addresses(include_loopback=True) == ['127.0.0.1', '192.168.1.10', '192.168.1.11', '172.17.0.1']

@pytest.mark.parametrize("text", ['34:ea:34:01:02:03', '34-EA-34-01-02-03', '34ea.3401.0203', '34ea34010203'])
def test_parse_mac_address(text):
    assert parse_mac_address(text) == bytes([0x34, 0xea, 0x34, 0x01, 0x02, 0x03])

@pytest.mark.parametrize("value", ['34:ea:34', 'zz:ea:34:01:02:03', bytes(7)])
def test_parse_mac_address_rejects_bad_input(value):
    with pytest.raises(MissingMacAddress):
        parse_mac_address(value)

def test_format_mac_address():
    assert format_mac_address(bytes([0x34, 0xea, 0x34, 0x01, 0x02, 0x03])) == '34:ea:34:01:02:03'
