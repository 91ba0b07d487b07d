"""FastAPI server exposing flat data files, their history and ad-hoc queries."""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Optional, TypeVar

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from flat_viewer import __version__
from flat_viewer.api_models import (
    CommitSummary,
    CreateViewResponse,
    DatasetsResponse,
    LoadDatasetRequest,
    QueryRequest,
    ViewStateResponse,
)
from flat_viewer.commit_message import parse_flat_commit_message
from flat_viewer.config import CORS_ORIGINS, LOG_LEVEL
from flat_viewer.errors import (
    GitHubAuthError,
    GitHubError,
    GitHubNotFoundError,
    GitHubRateLimitError,
    QueryEngineStateError,
    QueryInitError,
)
from flat_viewer.github import GitHubClient
from flat_viewer.normalizer import load_datasets
from flat_viewer.token_store import TokenStore
from flat_viewer.view_manager import ViewContext, view_manager

# Configure logging
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL), format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

T = TypeVar("T")

# -- Collaborators -------------------------------------------------------------
_github_client: Optional[GitHubClient] = None


def get_github_client() -> GitHubClient:
    global _github_client
    if _github_client is None:
        _github_client = GitHubClient()
    return _github_client


def get_token_store() -> TokenStore:
    return TokenStore()


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await view_manager.close_all()
    if _github_client is not None:
        await _github_client.aclose()


# -- FastAPI app ---------------------------------------------------------------
fastapi_app = FastAPI(title="Flat Viewer", version=__version__, lifespan=lifespan)

fastapi_app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


async def _with_token(store: TokenStore, call: Callable[[Optional[str]], Awaitable[T]]) -> T:
    """Run a GitHub call with the cached token; on 401 clear it and retry anonymously."""
    token = store.get_token()
    try:
        return await call(token)
    except GitHubAuthError:
        if token is None:
            raise
        logger.warning("[AUTH] Cached token rejected, retrying without it")
        store.clear_token()
        return await call(None)


def _github_http_error(e: GitHubError) -> HTTPException:
    if isinstance(e, GitHubNotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, GitHubAuthError):
        return HTTPException(status_code=401, detail=str(e))
    if isinstance(e, GitHubRateLimitError):
        return HTTPException(status_code=429, detail=str(e))
    return HTTPException(status_code=502, detail=str(e))


def _get_view_or_404(view_id: str) -> ViewContext:
    ctx = view_manager.get_view(view_id)
    if not ctx:
        raise HTTPException(status_code=404, detail=f"View '{view_id}' not found.")
    return ctx


def _view_state(ctx: ViewContext, superseded: bool = False) -> ViewStateResponse:
    session = ctx.session
    return ViewStateResponse(
        view_id=ctx.view_id,
        status=session.status,
        dataset_id=session.dataset_id,
        result=session.result,
        error=session.error,
        init_error=session.init_error,
        superseded=superseded,
    )


# -- Repository endpoints ------------------------------------------------------
@fastapi_app.get("/health")
async def health():
    """Health check."""
    return {"status": "healthy"}


@fastapi_app.get("/repos/{owner}/{name}/files")
async def list_files(
    owner: str,
    name: str,
    client: GitHubClient = Depends(get_github_client),
    store: TokenStore = Depends(get_token_store),
):
    """List data files in the repository's default branch."""
    try:
        files = await _with_token(store, lambda t: client.list_data_files(owner, name, token=t))
    except GitHubError as e:
        raise _github_http_error(e)
    return {"files": files}


@fastapi_app.get("/repos/{owner}/{name}/flat")
async def get_flat_workflow(
    owner: str,
    name: str,
    client: GitHubClient = Depends(get_github_client),
    store: TokenStore = Depends(get_token_store),
):
    """Report whether the repository has a flat workflow file."""
    try:
        found = await _with_token(store, lambda t: client.has_flat_workflow(owner, name, token=t))
    except GitHubError as e:
        raise _github_http_error(e)
    return {"has_flat_workflow": found}


def _summarize_commit(commit: dict[str, Any], path: str) -> CommitSummary:
    details = commit.get("commit") or {}
    author = details.get("author") or {}
    parsed = parse_flat_commit_message(details.get("message"), path)
    file_meta = parsed.file if parsed else None
    return CommitSummary(
        sha=commit["sha"],
        message=parsed.message if parsed else None,
        author_name=author.get("name"),
        author_email=author.get("email"),
        date=author.get("date"),
        file=file_meta,
        delta=file_meta.delta_sign if file_meta else None,
    )


@fastapi_app.get("/repos/{owner}/{name}/commits", response_model=list[CommitSummary])
async def list_commits(
    owner: str,
    name: str,
    path: str = Query(...),
    client: GitHubClient = Depends(get_github_client),
    store: TokenStore = Depends(get_token_store),
):
    """List commits for a data file with the flat metadata recorded for it."""
    try:
        commits = await _with_token(
            store, lambda t: client.list_commits(owner, name, path, token=t)
        )
    except GitHubError as e:
        raise _github_http_error(e)
    return [_summarize_commit(c, path) for c in commits]


@fastapi_app.get("/repos/{owner}/{name}/datasets", response_model=DatasetsResponse)
async def get_datasets(
    owner: str,
    name: str,
    path: str = Query(...),
    sha: str = Query(...),
    client: GitHubClient = Depends(get_github_client),
    store: TokenStore = Depends(get_token_store),
):
    """Fetch a data file at a commit and return its normalized datasets."""
    try:
        raw = await _with_token(
            store, lambda t: client.fetch_raw_file(owner, name, path, sha, token=t)
        )
    except GitHubError as e:
        raise _github_http_error(e)
    return DatasetsResponse(filename=path, sha=sha, datasets=load_datasets(raw))


# -- Query views ---------------------------------------------------------------
@fastapi_app.post("/views", response_model=CreateViewResponse)
async def create_view():
    """Create a query view. Load a dataset into it before querying."""
    ctx = view_manager.create_view(str(uuid.uuid4()))
    logger.info("[VIEW] Created view %s", ctx.view_id)
    return CreateViewResponse(view_id=ctx.view_id, status=ctx.session.status)


@fastapi_app.get("/views/{view_id}", response_model=ViewStateResponse)
async def get_view(view_id: str):
    return _view_state(_get_view_or_404(view_id))


@fastapi_app.put("/views/{view_id}/dataset", response_model=ViewStateResponse)
async def load_view_dataset(
    view_id: str,
    body: LoadDatasetRequest,
    client: GitHubClient = Depends(get_github_client),
    store: TokenStore = Depends(get_token_store),
):
    """Load one dataset of a file into the view, replacing the previous one."""
    ctx = _get_view_or_404(view_id)
    try:
        raw = await _with_token(
            store,
            lambda t: client.fetch_raw_file(body.owner, body.name, body.path, body.sha, token=t),
        )
    except GitHubError as e:
        raise _github_http_error(e)

    datasets = load_datasets(raw)
    if body.key is None:
        dataset = datasets[0]
    else:
        dataset = next((d for d in datasets if d.key == body.key), None)
        if dataset is None:
            raise HTTPException(status_code=404, detail=f"Dataset key '{body.key}' not found.")

    format_hint = "csv" if raw.extension in ("csv", "tsv") else "json"
    dataset_id = f"{body.owner}/{body.name}/{body.path}@{body.sha}#{body.key or ''}"
    try:
        await ctx.session.load(dataset_id, dataset, format_hint)
    except QueryInitError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return _view_state(ctx)


@fastapi_app.post("/views/{view_id}/query", response_model=ViewStateResponse)
async def run_query(view_id: str, body: QueryRequest):
    """Execute a query now. Errors come back inline next to the previous result."""
    ctx = _get_view_or_404(view_id)
    try:
        outcome = await ctx.session.run(body.query)
    except QueryEngineStateError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return _view_state(ctx, superseded=outcome.superseded)


@fastapi_app.delete("/views/{view_id}")
async def delete_view(view_id: str):
    """Dispose the view's query store."""
    _get_view_or_404(view_id)
    await view_manager.close_view(view_id)
    return {"status": "closed", "view_id": view_id}
