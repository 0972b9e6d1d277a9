# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Validation gates run before and after builds."""

from __future__ import annotations

from .descriptors import (
    DeclaredNames,
    JsonListDescriptor,
    PlainListDescriptor,
    ShellVariableDescriptor,
    SqlActivationDescriptor,
    open_descriptor,
)
from .gates import run_postbuild_gate, run_prebuild_gate
from .report import Severity, ValidationIssue, ValidationReport

__all__ = [
    "DeclaredNames",
    "JsonListDescriptor",
    "PlainListDescriptor",
    "Severity",
    "ShellVariableDescriptor",
    "SqlActivationDescriptor",
    "ValidationIssue",
    "ValidationReport",
    "open_descriptor",
    "run_postbuild_gate",
    "run_prebuild_gate",
]
