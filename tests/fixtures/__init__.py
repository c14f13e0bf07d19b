"""Shared fakes and pytest fixture plugins for echo-pdk tests."""
