"""Stage 1: Crawl and extraction.

- Headless browser rendering
- robots.txt / sitemap discovery
- Bounded concurrent traversal
- Heading-based fragment extraction
"""
