"""Shared principals for the test suite."""

O1 = b"\x11" * 32
O2 = b"\x22" * 32
O3 = b"\x33" * 32
O4 = b"\x44" * 32
X = b"\xaa" * 32
FUNDER = b"\xf0" * 32
STRANGER = b"\x99" * 32
