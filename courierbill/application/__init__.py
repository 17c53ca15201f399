"""Workflow orchestration over the domain and runtime layers."""
