"""
django-article-cms - Article authoring with CDN image lifecycle tracking.

Features:
- Articles with categories, tags and a featured (hero) image
- Image records for every file uploaded to the image CDN
- Orphan adoption for images uploaded before their article exists
- Usage reconciliation on every article save
- Grace-period deletion with a bounded-concurrency cleanup sweep
- Pluggable CDN gateway (ImageKit out of the box)
"""

__version__ = "0.1.0"
__author__ = "Nestor Wheelock"
