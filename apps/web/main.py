"""FastAPI web application for Liberator."""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, UploadFile
from fastapi.responses import HTMLResponse, Response
from pydantic import BaseModel

from liberation.config import LiberationConfig
from liberation.errors import FatalRetrievalError, LiberationError, RunAbandoned
from liberation.logging import get_logger
from liberation.models import AnalysisResult, LiberationRecord, LiberationResult
from liberation.pipeline import Liberator, RunOptions

logger = get_logger("web")

app = FastAPI(
    title="Liberator",
    description="Remove proprietary-platform coupling from generated projects",
    version="0.1.0",
)


@lru_cache(maxsize=1)
def get_liberator() -> Liberator:
    """Process-wide liberator; tests override this dependency."""
    try:
        return Liberator.from_config(LiberationConfig.from_env())
    except LiberationError as e:
        raise_http_error(e)


class IssueModel(BaseModel):
    id: str
    severity: str
    file_path: str
    description: str
    rule: str
    platform: Optional[str] = None
    line: Optional[int] = None
    suggestion: Optional[str] = None


class DependencyModel(BaseModel):
    name: str
    declared_version: Optional[str] = None
    status: str
    manifest_path: str


class AnalysisResponse(BaseModel):
    """Response model for project analysis."""
    score: int
    detected_platform: Optional[str] = None
    summary: dict[str, int]
    issues: list[IssueModel]
    dependencies: list[DependencyModel]
    files_to_remove: list[str]
    proprietary_cdns: list[str]
    recommendations: list[str]
    files_total: int = 0
    skipped_files: list[str] = []


class LiberateResponse(BaseModel):
    """Response model for a completed run."""
    run_id: Optional[str] = None
    project_name: str
    archive_ref: str
    download_url: str
    score_before: int
    score_after: int
    stats: dict[str, int]
    removed_dependencies: list[str]
    skipped_files: list[str]


class GithubLiberateRequest(BaseModel):
    """Request model for liberating a GitHub repository."""
    repository: str
    ref: Optional[str] = None
    project_name: Optional[str] = None
    use_ai: bool = True
    owner_id: str = "local"


class RecordModel(BaseModel):
    run_id: str
    owner_id: str
    project_name: str
    score_before: int
    score_after: int
    files_total: int
    created_at: str
    archive_ref: str


def analysis_response(
    analysis: AnalysisResult, files_total: int = 0, skipped: tuple[str, ...] = ()
) -> AnalysisResponse:
    return AnalysisResponse(
        score=analysis.score,
        detected_platform=analysis.detected_platform,
        summary=analysis.summary(),
        issues=[
            IssueModel(
                id=issue.id,
                severity=issue.severity.value,
                file_path=issue.file_path,
                description=issue.description,
                rule=issue.rule,
                platform=issue.platform,
                line=issue.line,
                suggestion=issue.suggestion,
            )
            for issue in analysis.issues
        ],
        dependencies=[
            DependencyModel(
                name=dep.name,
                declared_version=dep.declared_version,
                status=dep.status.value,
                manifest_path=dep.manifest_path,
            )
            for dep in analysis.dependencies
        ],
        files_to_remove=analysis.files_to_remove,
        proprietary_cdns=analysis.proprietary_cdns,
        recommendations=analysis.recommendations,
        files_total=files_total,
        skipped_files=list(skipped),
    )


def liberate_response(result: LiberationResult) -> LiberateResponse:
    return LiberateResponse(
        run_id=result.record.run_id if result.record else None,
        project_name=result.project_name,
        archive_ref=result.archive_ref,
        download_url=f"/api/download/{result.archive_ref}",
        score_before=result.analysis.score,
        score_after=result.score_after,
        stats=result.stats.to_dict(),
        removed_dependencies=list(result.removed_dependencies),
        skipped_files=list(result.skipped_files),
    )


def raise_http_error(error: LiberationError) -> None:
    """Map a terminal pipeline error onto an HTTP error."""
    if isinstance(error, (FatalRetrievalError, RunAbandoned)):
        raise HTTPException(status_code=400, detail=str(error)) from error
    logger.error("Run failed: %s", error)
    raise HTTPException(status_code=500, detail=str(error)) from error


async def read_zip_upload(file: UploadFile) -> bytes:
    if not file.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")
    if not file.filename.lower().endswith(".zip"):
        raise HTTPException(status_code=400, detail="Upload must be a .zip archive")
    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")
    return data


@app.get("/", response_class=HTMLResponse)
async def home():
    """Serve the main application page."""
    return get_index_html()


@app.get("/favicon.ico")
async def favicon():
    """Return a simple favicon to prevent 404 errors."""
    # Simple 1x1 transparent PNG
    favicon_data = (
        b'\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01'
        b'\x08\x02\x00\x00\x00\x90wS\xde\x00\x00\x00\tpHYs\x00\x00\x0b\x13\x00\x00'
        b'\x0b\x13\x01\x00\x9a\x9c\x18\x00\x00\x00\x12IDAT\x08\x1dc\xf8\x00\x00'
        b'\x00\x01\x00\x01u\x02\x81\xa3\x00\x00\x00\x00IEND\xaeB`\x82'
    )
    return Response(content=favicon_data, media_type="image/png")


@app.get("/api/health")
async def health():
    return {"status": "ok"}


@app.post("/api/analyze", response_model=AnalysisResponse)
async def analyze_upload(
    file: UploadFile = File(...),
    liberator: Liberator = Depends(get_liberator),
):
    """Analyze an uploaded project archive without changing anything."""
    data = await read_zip_upload(file)
    try:
        retrieval = await liberator.retrieve(data)
        analysis = liberator.analyze(retrieval.snapshot)
    except LiberationError as e:
        raise_http_error(e)
    return analysis_response(analysis, len(retrieval.snapshot), retrieval.skipped)


@app.post("/api/liberate", response_model=LiberateResponse)
async def liberate_upload(
    file: UploadFile = File(...),
    project_name: Optional[str] = Form(None),
    use_ai: bool = Form(True),
    owner_id: str = Form("local"),
    liberator: Liberator = Depends(get_liberator),
):
    """Clean and package an uploaded project archive."""
    data = await read_zip_upload(file)
    options = RunOptions(
        project_name=project_name or Path(file.filename).stem,
        owner_id=owner_id,
        use_ai=use_ai,
    )
    try:
        result = await liberator.run(data, options)
    except LiberationError as e:
        raise_http_error(e)
    return liberate_response(result)


@app.post("/api/liberate/github", response_model=LiberateResponse)
async def liberate_github(
    request: GithubLiberateRequest,
    liberator: Liberator = Depends(get_liberator),
):
    """Clean and package a GitHub repository."""
    if not request.repository.strip():
        raise HTTPException(status_code=400, detail="No repository provided")
    options = RunOptions(
        project_name=request.project_name,
        owner_id=request.owner_id,
        use_ai=request.use_ai,
        ref=request.ref,
    )
    try:
        result = await liberator.run(request.repository, options)
    except LiberationError as e:
        raise_http_error(e)
    return liberate_response(result)


@app.get("/api/download/{archive_ref}")
async def download_archive(archive_ref: str, liberator: Liberator = Depends(get_liberator)):
    """Download a stored archive."""
    try:
        data = liberator.store.get(archive_ref)
    except KeyError:
        raise HTTPException(status_code=404, detail="Archive not found")
    return Response(
        content=data,
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{archive_ref}.zip"'},
    )


@app.get("/api/history", response_model=list[RecordModel])
async def list_history(owner_id: str = "local", liberator: Liberator = Depends(get_liberator)):
    """Runs of one owner, newest first."""
    try:
        records: list[LiberationRecord] = liberator.ledger.list(owner_id)
    except LiberationError as e:
        raise_http_error(e)
    return [RecordModel(**record.to_dict()) for record in records]


@app.delete("/api/history/{run_id}")
async def delete_history(
    run_id: str, owner_id: str = "local", liberator: Liberator = Depends(get_liberator)
):
    """Delete one of the owner's runs."""
    try:
        deleted = liberator.ledger.delete(run_id, owner_id)
    except LiberationError as e:
        raise_http_error(e)
    if not deleted:
        raise HTTPException(status_code=404, detail="Run not found")
    return {"deleted": run_id}


def get_index_html() -> str:
    """Return the main HTML page."""
    return """
    <!DOCTYPE html>
    <html lang="en">
    <head>
        <meta charset="UTF-8">
        <meta name="viewport" content="width=device-width, initial-scale=1.0">
        <title>Liberator - Platform Liberation</title>
        <link href="https://cdn.jsdelivr.net/npm/bootstrap@5.3.0/dist/css/bootstrap.min.css" rel="stylesheet">
    </head>
    <body>
        <div class="container py-4">
            <div class="text-center mb-5">
                <h1 class="display-4 fw-bold text-primary">Liberator</h1>
                <p class="lead text-muted">Strip proprietary-platform coupling and get a self-hostable project</p>
            </div>

            <div class="row">
                <div class="col-lg-6 mb-4">
                    <div class="card h-100">
                        <div class="card-header"><h3 class="card-title mb-0">Project archive</h3></div>
                        <div class="card-body">
                            <input type="file" id="archive" accept=".zip" class="form-control mb-3">
                            <div class="form-check mb-3">
                                <input class="form-check-input" type="checkbox" id="useAi" checked>
                                <label class="form-check-label" for="useAi">Use AI-assisted rewrite</label>
                            </div>
                            <button class="btn btn-outline-primary" onclick="analyze()">Analyze</button>
                            <button class="btn btn-primary" onclick="liberate()">Liberate</button>
                        </div>
                    </div>
                </div>
                <div class="col-lg-6 mb-4">
                    <div class="card h-100">
                        <div class="card-header"><h3 class="card-title mb-0">Result</h3></div>
                        <div class="card-body">
                            <div id="score" class="display-6 mb-3"></div>
                            <ul id="items" class="list-group mb-3"></ul>
                            <a id="download" class="btn btn-success d-none">Download archive</a>
                            <div id="error" class="alert alert-danger d-none"></div>
                        </div>
                    </div>
                </div>
            </div>
        </div>

        <script>
            function form() {
                const file = document.getElementById('archive').files[0];
                if (!file) { throw new Error('Choose a .zip archive first'); }
                const data = new FormData();
                data.append('file', file);
                data.append('use_ai', document.getElementById('useAi').checked);
                return data;
            }

            function show(lines, scoreText) {
                document.getElementById('error').classList.add('d-none');
                document.getElementById('score').textContent = scoreText;
                const list = document.getElementById('items');
                list.innerHTML = '';
                for (const line of lines) {
                    const item = document.createElement('li');
                    item.className = 'list-group-item';
                    item.textContent = line;
                    list.appendChild(item);
                }
            }

            function fail(message) {
                const box = document.getElementById('error');
                box.textContent = message;
                box.classList.remove('d-none');
            }

            async function call(url) {
                const response = await fetch(url, { method: 'POST', body: form() });
                const body = await response.json();
                if (!response.ok) { throw new Error(body.detail || 'Request failed'); }
                return body;
            }

            async function analyze() {
                try {
                    const body = await call('/api/analyze');
                    show(body.issues.map(i => `[${i.severity}] ${i.file_path}: ${i.description}`),
                         `Score ${body.score}/100`);
                } catch (e) { fail(e.message); }
            }

            async function liberate() {
                try {
                    const body = await call('/api/liberate');
                    show(Object.entries(body.stats).map(([k, v]) => `${k}: ${v}`),
                         `Score ${body.score_before} → ${body.score_after}`);
                    const link = document.getElementById('download');
                    link.href = body.download_url;
                    link.classList.remove('d-none');
                } catch (e) { fail(e.message); }
            }
        </script>
    </body>
    </html>
    """
