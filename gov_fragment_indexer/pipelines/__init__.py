"""Crawl-to-index pipeline.

Stage 1: Crawl - Render pages and slice them into classified fragments
Stage 2: Aggregate - Roll fragments up into one document per canonical page
Stage 3: Sync - Write both collections under a new generation and prune stale data
"""
