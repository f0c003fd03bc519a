"""Shared pytest configuration for roomledger tests."""
import sys
sys.dont_write_bytecode = True
