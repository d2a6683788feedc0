"""Task modules live here.

Each module declares its tasks with ``@orchestrator.task(name=..., inputs=[...], outputs=[...])``;
they are collected by ``orchestrator.core.discover_tasks`` and wired together in
``sitebuild.pipelines``.
"""
