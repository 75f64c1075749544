# SPDX-License-Identifier: Apache-2.0

"""
Domain logic package for the complaint pipeline.

This package contains pure business logic functions with no side effects:
moderation scoring, fingerprinting, routing, the transition table and
retention selection.
"""
