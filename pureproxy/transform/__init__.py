"""Transformation helpers turning pipeline results into endpoint records."""

from pureproxy.transform.endpoints import EndpointRecord, build_endpoint, infer_protocol

__all__ = ["EndpointRecord", "build_endpoint", "infer_protocol"]
