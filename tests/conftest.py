"""Shared test configuration."""
import os
import time


def pytest_configure(config):
    """Pin the local time zone so day boundaries are deterministic."""
    os.environ['TZ'] = 'UTC'
    if hasattr(time, 'tzset'):
        time.tzset()
