"""FastAPI web application for Revive."""

import json
from typing import Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from revive.blocking import BlockingDependencyDetector
from revive.error_analyzer import ErrorAnalyzer
from revive.parse_node import parse_package_json
from revive.registry import PackageReplacementRegistry
from revive.strategies import describe, strategy_to_dict

app = FastAPI(
    title="Revive",
    description="Diagnose and repair dependency failures in abandoned Node.js repositories",
    version="0.1.0",
)


class AnalyzeRequest(BaseModel):
    """Captured output of a failed build."""
    stdout: str = ""
    stderr: str = ""


class AnalyzedErrorModel(BaseModel):
    category: str
    priority: int
    message: str
    package: Optional[str] = None
    version_constraint: Optional[str] = None
    conflicting_packages: Optional[list[str]] = None
    suggested_fix: Optional[dict] = None
    suggested_fix_description: Optional[str] = None


class AnalyzeResponse(BaseModel):
    errors: list[AnalyzedErrorModel]
    error_count: int
    errors_by_category: dict[str, int]


class ScanRequest(BaseModel):
    """package.json text plus an optional target architecture."""
    content: str
    arch: Optional[str] = None


class BlockingDependencyModel(BaseModel):
    name: str
    version: str
    reason: str
    replacement: Optional[str] = None
    requires_code_changes: bool = False


class ScanResponse(BaseModel):
    blocking: list[BlockingDependencyModel]
    has_blocking: bool


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.post("/api/analyze", response_model=AnalyzeResponse)
async def analyze_build_output(request: AnalyzeRequest):
    """Classify the errors in a failed build's output."""
    if not request.stdout.strip() and not request.stderr.strip():
        raise HTTPException(status_code=400, detail="No build output provided")

    try:
        errors = ErrorAnalyzer().analyze_output(f"{request.stdout}\n{request.stderr}")
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error analyzing build output: {str(e)}")

    by_category: dict[str, int] = {}
    for error in errors:
        by_category[error.category.value] = by_category.get(error.category.value, 0) + 1

    return AnalyzeResponse(
        errors=[
            AnalyzedErrorModel(
                category=error.category.value,
                priority=error.priority,
                message=error.message,
                package=error.package_name,
                version_constraint=error.version_constraint,
                conflicting_packages=error.conflicting_packages,
                suggested_fix=strategy_to_dict(error.suggested_fix) if error.suggested_fix else None,
                suggested_fix_description=describe(error.suggested_fix) if error.suggested_fix else None,
            )
            for error in errors
        ],
        error_count=len(errors),
        errors_by_category=by_category,
    )


@app.post("/api/scan", response_model=ScanResponse)
async def scan_manifest(request: ScanRequest):
    """Report dependencies in a package.json that will block installation."""
    try:
        content = request.content.strip()
        if not content:
            raise HTTPException(status_code=400, detail="No content provided")

        try:
            manifest = parse_package_json(content)
        except (json.JSONDecodeError, ValueError) as e:
            raise HTTPException(status_code=400, detail=f"Invalid package.json: {str(e)}")

        registry = PackageReplacementRegistry()
        registry.load()
        # Request-supplied URLs are never fetched.
        detector = BlockingDependencyDetector(registry=registry, arch=request.arch, check_urls=False)
        blocking = await detector.detect(manifest.dependencies())

        return ScanResponse(
            blocking=[
                BlockingDependencyModel(
                    name=dep.name,
                    version=dep.version,
                    reason=dep.reason.value,
                    replacement=dep.replacement.new_name if dep.replacement else None,
                    requires_code_changes=dep.replacement.requires_code_changes if dep.replacement else False,
                )
                for dep in blocking
            ],
            has_blocking=bool(blocking),
        )

    except HTTPException:
        # Re-raise HTTP exceptions (don't convert to 500)
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Error scanning dependencies: {str(e)}")
