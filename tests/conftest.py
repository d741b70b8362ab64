# tests/conftest.py
"""
Shared match sources and fixtures for the bitmatch test-suite.
"""

import logging

import pytest


IPV4_MATCH = '''
# first word of an IPv4 header
| "4:4, ihl:4:check(ihl >= 5), tos:8, length:16, _" -> (ihl, tos, length)
| "version:4, _"                                     -> version
'''

TLV_MATCH = '''
| "tag:8, size:8, value:size*8:string, rest:-1:bitstring" -> (tag, value, rest)
'''

GIF_MATCH = '''
| "\\"GIF\\":24:string, version:24:string, width:16:littleendian, height:16:littleendian, _"
    -> (version, width, height)
| "_" -> -1
'''

BAD_MATCH = '''
| "x:65" -> x
| "y:8"  -> zz
| "z:8"  -> z
'''

# 45 00 05 dc: version 4, ihl 5, tos 0, total length 1500
IPV4_WORD = b"\x45\x00\x05\xdc"


@pytest.fixture
def ipv4_file(tmp_path):
    path = tmp_path / "ipv4.bm"
    path.write_text(IPV4_MATCH, encoding="utf-8")
    return path


@pytest.fixture
def bad_file(tmp_path):
    path = tmp_path / "bad.bm"
    path.write_text(BAD_MATCH, encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def _reset_bitmatch_logger():
    """The CLI attaches a handler to the ``bitmatch`` logger; drop it again."""
    yield
    logger = logging.getLogger("bitmatch")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
