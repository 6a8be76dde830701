"""JSON-RPC 2.0 connections and JSON Schema validation."""

__version__ = "0.1.0"