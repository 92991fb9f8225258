from typing import List
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, field_validator

from sqldrizzler.api.jobs import JobManager, RunStatus
from sqldrizzler.database import DatabaseConfig

app = FastAPI(title="SQL Drizzler API", description="API for running concurrent SQL stress tests")

# Enable CORS for frontend integration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

job_manager = JobManager()


class RunCreate(BaseModel):
    query: str
    interval_s: float = Field(default=0.0, ge=0)
    concurrency: int = Field(default=10, ge=1)
    iterations: int = Field(default=5, ge=1)
    host: str = "localhost:3306"
    user: str = "root"
    password: str = ""
    database: str = "your_database_name"

    @field_validator("query")
    @classmethod
    def query_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("query must not be empty")
        return v


@app.post("/api/runs", response_model=dict)
async def create_run(request: RunCreate):
    try:
        database = DatabaseConfig.from_host(
            request.host,
            user=request.user,
            password=request.password,
            database=request.database,
        )
        run_id = job_manager.create_job(
            query=request.query,
            interval_s=request.interval_s,
            concurrency=request.concurrency,
            iterations=request.iterations,
            database=database,
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"run_id": run_id}


@app.get("/api/runs", response_model=List[RunStatus])
async def list_runs():
    return job_manager.list_jobs()


@app.get("/api/runs/{run_id}", response_model=RunStatus)
async def get_run(run_id: str):
    job = job_manager.get_job(run_id)
    if not job:
        raise HTTPException(status_code=404, detail="Run not found")
    return job


@app.post("/api/runs/{run_id}/stop")
async def stop_run(run_id: str):
    job = job_manager.get_job(run_id)
    if not job:
        raise HTTPException(status_code=404, detail="Run not found")
    job_manager.stop_job(run_id)
    return {"status": "stopping"}


@app.delete("/api/runs/{run_id}")
async def delete_run(run_id: str):
    job = job_manager.get_job(run_id)
    if not job:
        raise HTTPException(status_code=404, detail="Run not found")
    job_manager.delete_job(run_id)
    return {"status": "deleted"}


@app.get("/")
async def read_root():
    return {"message": "SQL Drizzler API is running."}


def main():
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
