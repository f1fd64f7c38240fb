"""
policyforge test suite.

This package contains tests for the policyforge service:
- Types and request validation tests
- Template rendering tests
- Engine tests (OPA over mocked HTTP, optional live OPA)
- Store tests (S3 over a mocked boto3 client)
- Compiler, decision and authoring tests
- HTTP API tests
"""
