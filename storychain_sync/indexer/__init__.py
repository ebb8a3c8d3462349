"""
Chain-to-store synchronization: projection, watermark and orchestration.
"""
