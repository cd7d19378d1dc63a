"""
Publishing Context

Responsibilities:
- Places the built PDF on a dedicated branch for static hosting
- Renders a landing page linking to the PDF
- Commits only when the published content changed, then pushes

Owns: The publish branch
Never: Builds the PDF or touches the working branch
"""

from paperbuild.contexts.publishing.publisher import PublishResult, publish_pdf

__all__ = ["PublishResult", "publish_pdf"]
