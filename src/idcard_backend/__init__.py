"""
ReIDentify Backend - REST API for the faculty ID-card portal

This package provides the FastAPI service that reviewers use to process
faculty ID-card requests. It enables:

- Listing pending, approved (print queue) and rejected requests
- Approving or rejecting a pending request
- Reading the accepted/rejected history mirrors
- Checking whether a faculty number is registered

Requests are created by the portal frontend directly in the document store;
this service only reviews and moves them.

Key Components:
    - main: FastAPI application and HTTP endpoint definitions
    - workflow: Status transitions and the faculty number check
    - database: Document store client (MongoDB via motor, or in-memory)
    - models: Pydantic request/response models and collection names
    - configuration: Environment settings

Usage:
    Run the API server with:
        python -m idcard_backend

    Or directly through uvicorn:
        uvicorn idcard_backend.main:app --reload --port 5000
"""
