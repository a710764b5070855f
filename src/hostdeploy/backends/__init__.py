"""Container deployment backends (Compose stack or single Dockerfile)"""
