"""
Component Test Layer Configuration

Structure:
    tests/component/
    └── nft_order_service/   Pipeline components with mocked collaborators
        └── mocks.py         Provider, gateway, metadata and channel mocks

Usage:
    pytest tests/component -v
"""
import os
import sys

# Set testing environment BEFORE any imports
os.environ["ENV"] = "testing"
os.environ["ENVIRONMENT"] = "testing"

# Add project root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))
