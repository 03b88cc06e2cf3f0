"""
Deployment module for the PHP web application.

This module contains all deployment-related components:
- Image build (source archive, .env rewrite, Dockerfile)
- AWS registry, ECS service, scaling, migrations and DNS management
- Workflow orchestration and CLI
"""
