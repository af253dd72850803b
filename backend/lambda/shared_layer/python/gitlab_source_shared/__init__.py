"""gitlab_source_shared — Shared utilities for the GitLab source action Lambdas.

Provides:
    - Lazy boto3 client singletons (CodePipeline, CodeBuild, Secrets Manager, SSM)
    - Exponential backoff retry engine with jitter
    - TTL-cached Secrets Manager lookups
    - HTTP response helpers for API Gateway proxy integrations
"""

__version__ = "1.0.0"
