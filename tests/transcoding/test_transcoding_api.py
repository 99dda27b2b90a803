"""HTTP tests for the transcoding and video endpoints.

**Feature: video-transcoder, Property: End-To-End Transcode Lifecycle**
"""

import pytest
from httpx import ASGITransport, AsyncClient

from transcoder.core.storage import LocalDirectory
from transcoder.main import app
from transcoder.modules.auth.jwt import create_access_token
from transcoder.modules.transcoding.router import get_transcoding_service
from transcoder.modules.transcoding.service import TranscodingService
from transcoder.modules.video.router import get_video_service
from transcoder.modules.video.service import VideoService


def auth_headers(user_id: str = "user-1") -> dict[str, str]:
    token, _ = create_access_token(user_id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def client(session_factory, transcode_config, task_manager):
    async def transcoding_service_override():
        async with session_factory() as session:
            yield TranscodingService(session, transcode_config, task_manager)

    async def video_service_override():
        async with session_factory() as session:
            yield VideoService(
                session,
                uploads=LocalDirectory(transcode_config.uploads_dir),
                allowed_types=["video/mp4", "video/quicktime"],
            )

    app.dependency_overrides[get_transcoding_service] = transcoding_service_override
    app.dependency_overrides[get_video_service] = video_service_override
    app.state.task_manager = task_manager
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://testserver"
        ) as client:
            yield client
    finally:
        app.dependency_overrides.clear()


async def upload(client: AsyncClient, user_id: str = "user-1", name: str = "clip.mp4") -> dict:
    response = await client.post(
        "/api/videos",
        files={"video": (name, b"\x00\x00\x00\x18ftypmp42", "video/mp4")},
        headers=auth_headers(user_id),
    )
    assert response.status_code == 201, response.text
    return response.json()


class TestTranscodeEndpoints:
    """Request, poll and delete transcode jobs over HTTP."""

    @pytest.mark.asyncio
    async def test_transcode_lifecycle(self, client, fake_transcoder, task_manager) -> None:
        """**Feature: video-transcoder, Property: End-To-End Transcode Lifecycle**

        Submit, resubmit while processing, complete, then poll.
        """
        video = await upload(client)
        body = {"videoId": video["videoId"], "format": "mp4"}

        created = await client.post("/api/transcode", json=body, headers=auth_headers())
        assert created.status_code == 201
        job_id = created.json()["jobId"]
        assert created.json()["status"] == "processing"

        duplicate = await client.post("/api/transcode", json=body, headers=auth_headers())
        assert duplicate.status_code == 409
        assert duplicate.json()["jobId"] == job_id
        assert "error" in duplicate.json()

        fake_transcoder.complete(job_id)
        await task_manager.drain(timeout=5)

        status = await client.get(f"/api/jobs/{job_id}/status", headers=auth_headers())
        assert status.status_code == 200
        data = status.json()
        assert data["jobId"] == job_id
        assert data["status"] == "completed"
        assert data["completedAt"].endswith("Z")
        assert data["createdAt"].endswith("Z")

    @pytest.mark.asyncio
    async def test_unsupported_format(self, client, fake_transcoder) -> None:
        video = await upload(client)

        response = await client.post(
            "/api/transcode",
            json={"videoId": video["videoId"], "format": "flac"},
            headers=auth_headers(),
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Unsupported format. Allowed: mp4, avi, mov, webm"}
        assert fake_transcoder.requests == []

    @pytest.mark.asyncio
    async def test_missing_fields(self, client) -> None:
        response = await client.post("/api/transcode", json={}, headers=auth_headers())

        assert response.status_code == 400
        assert response.json() == {"error": "Video ID and format are required"}

    @pytest.mark.asyncio
    async def test_non_string_fields_are_client_errors(self, client, fake_transcoder) -> None:
        video = await upload(client)

        numeric = await client.post(
            "/api/transcode",
            json={"videoId": video["videoId"], "format": 123},
            headers=auth_headers(),
        )
        nested = await client.post(
            "/api/transcode",
            json={"videoId": {"id": video["videoId"]}, "format": "mp4"},
            headers=auth_headers(),
        )

        assert numeric.status_code == 400
        assert numeric.json() == {"error": "Unsupported format. Allowed: mp4, avi, mov, webm"}
        assert nested.status_code == 400
        assert nested.json() == {"error": "Video ID and format are required"}
        assert fake_transcoder.requests == []

    @pytest.mark.asyncio
    async def test_foreign_video(self, client) -> None:
        video = await upload(client, user_id="owner")

        response = await client.post(
            "/api/transcode",
            json={"videoId": video["videoId"], "format": "mp4"},
            headers=auth_headers("intruder"),
        )

        assert response.status_code == 404
        assert response.json() == {"error": "Video not found"}

    @pytest.mark.asyncio
    async def test_start_failure_returns_500(self, client, fake_transcoder) -> None:
        video = await upload(client)
        fake_transcoder.start_error = "Failed to start ffmpeg"

        response = await client.post(
            "/api/transcode",
            json={"videoId": video["videoId"], "format": "mp4"},
            headers=auth_headers(),
        )
        assert response.status_code == 500
        assert response.json()["error"] == "Failed to start ffmpeg"

        jobs = (await client.get("/api/jobs", headers=auth_headers())).json()["jobs"]
        assert [j["status"] for j in jobs] == ["failed"]
        assert jobs[0]["errorMessage"] == "Failed to start ffmpeg"

    @pytest.mark.asyncio
    async def test_requires_authentication(self, client) -> None:
        assert (await client.get("/api/jobs")).status_code == 401
        assert (
            await client.get("/api/jobs", headers={"Authorization": "Bearer not-a-token"})
        ).status_code == 401

    @pytest.mark.asyncio
    async def test_status_of_foreign_job(self, client) -> None:
        video = await upload(client, user_id="owner")
        created = await client.post(
            "/api/transcode",
            json={"videoId": video["videoId"], "format": "webm"},
            headers=auth_headers("owner"),
        )
        job_id = created.json()["jobId"]

        foreign = await client.get(f"/api/jobs/{job_id}/status", headers=auth_headers("intruder"))
        missing = await client.get("/api/jobs/nope/status", headers=auth_headers("intruder"))

        assert foreign.status_code == missing.status_code == 404
        assert foreign.json() == missing.json() == {"error": "Transcode job not found"}

    @pytest.mark.asyncio
    async def test_list_and_delete_jobs(self, client) -> None:
        video = await upload(client, name="Holiday.mp4")
        created = await client.post(
            "/api/transcode",
            json={"videoId": video["videoId"], "format": "avi"},
            headers=auth_headers(),
        )
        job_id = created.json()["jobId"]

        jobs = (await client.get("/api/jobs", headers=auth_headers())).json()["jobs"]
        assert len(jobs) == 1
        assert jobs[0]["id"] == job_id
        assert jobs[0]["originalVideoName"] == "Holiday.mp4"
        assert jobs[0]["format"] == "avi"
        assert jobs[0]["outputFilename"].endswith(".avi")

        deleted = await client.delete(f"/api/jobs/{job_id}", headers=auth_headers())
        assert deleted.status_code == 200
        assert (await client.get("/api/jobs", headers=auth_headers())).json() == {"jobs": []}

        again = await client.delete(f"/api/jobs/{job_id}", headers=auth_headers())
        assert again.status_code == 404

    @pytest.mark.asyncio
    async def test_download_transcoded(
        self, client, fake_transcoder, task_manager, transcode_config
    ) -> None:
        video = await upload(client)
        job_id = (
            await client.post(
                "/api/transcode",
                json={"videoId": video["videoId"], "format": "mp4"},
                headers=auth_headers(),
            )
        ).json()["jobId"]
        [job] = (await client.get("/api/jobs", headers=auth_headers())).json()["jobs"]
        with open(job["outputPath"], "wb") as f:
            f.write(b"converted-bytes")

        early = await client.get(
            f"/api/download/transcoded/{job['outputFilename']}", headers=auth_headers()
        )
        assert early.status_code == 404

        fake_transcoder.complete(job_id)
        await task_manager.drain(timeout=5)

        response = await client.get(
            f"/api/download/transcoded/{job['outputFilename']}", headers=auth_headers()
        )
        assert response.status_code == 200
        assert response.content == b"converted-bytes"
        assert f"transcoded_mp4_{job['outputFilename']}" in response.headers["content-disposition"]

    @pytest.mark.asyncio
    async def test_transcode_health_is_public(self, client) -> None:
        response = await client.get("/api/transcode/health")

        assert response.status_code == 200
        data = response.json()
        assert data["ffmpegAvailable"] is True
        assert data["supportedFormats"] == 4
        assert data["directories"] == {"uploads": True, "transcoded": True}


class TestVideoEndpoints:
    """Upload, list, delete and download source videos."""

    @pytest.mark.asyncio
    async def test_upload_and_list(self, client) -> None:
        uploaded = await upload(client, name="Holiday.mp4")
        assert uploaded["message"] == "Video uploaded successfully"
        assert uploaded["filename"].startswith("Holiday_")

        videos = (await client.get("/api/videos", headers=auth_headers())).json()["videos"]
        assert [v["id"] for v in videos] == [uploaded["videoId"]]
        assert videos[0]["originalName"] == "Holiday.mp4"
        assert videos[0]["uploadDate"].endswith("Z")

        other = (await client.get("/api/videos", headers=auth_headers("user-2"))).json()
        assert other == {"videos": []}

    @pytest.mark.asyncio
    async def test_upload_rejects_non_video(self, client) -> None:
        response = await client.post(
            "/api/videos",
            files={"video": ("notes.txt", b"hello", "text/plain")},
            headers=auth_headers(),
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid file type. Only video files are allowed."}

    @pytest.mark.asyncio
    async def test_delete_video_keeps_jobs(self, client) -> None:
        video = await upload(client)
        await client.post(
            "/api/transcode",
            json={"videoId": video["videoId"], "format": "mp4"},
            headers=auth_headers(),
        )

        deleted = await client.delete(f"/api/videos/{video['videoId']}", headers=auth_headers())
        assert deleted.status_code == 200

        jobs = (await client.get("/api/jobs", headers=auth_headers())).json()["jobs"]
        assert len(jobs) == 1
        assert jobs[0]["originalVideoName"] == "Deleted Video"

    @pytest.mark.asyncio
    async def test_download_original(self, client) -> None:
        video = await upload(client, name="Holiday.mp4")

        response = await client.get(
            f"/api/download/original/{video['filename']}", headers=auth_headers()
        )
        assert response.status_code == 200
        assert response.content == b"\x00\x00\x00\x18ftypmp42"
        assert "Holiday.mp4" in response.headers["content-disposition"]

        foreign = await client.get(
            f"/api/download/original/{video['filename']}", headers=auth_headers("user-2")
        )
        assert foreign.status_code == 404


class TestServiceEndpoints:
    """Liveness and metrics."""

    @pytest.mark.asyncio
    async def test_health(self, client) -> None:
        response = await client.get("/health")
        assert response.json() == {"status": "healthy"}
        assert "X-Correlation-ID" in response.headers

    @pytest.mark.asyncio
    async def test_metrics(self, client) -> None:
        await client.get("/health")
        response = await client.get("/metrics")

        assert response.status_code == 200
        assert "http_requests_total" in response.text
