"""Tests for the jobs and advanced matching HTTP endpoints."""

from uuid import uuid4

import pytest
from sqlalchemy import func, select

from jobfeed.models import Job, JobStatus, Site
from jobfeed.services.remote import RemoteCallError


def scraped(external_id, company_name="Initech", description="Django and Postgres."):
    return {
        "site_id": 3,
        "external_id": external_id,
        "external_url": f"https://jobs.example.com/{external_id}",
        "title": f"Backend Engineer {external_id}",
        "company_name": company_name,
        "job_type": "remote",
        "description": description,
    }


@pytest.fixture
def headers(user_id):
    return {"X-User-Id": str(user_id)}


async def test_root(api_client):
    response = await api_client.get("/")
    assert response.status_code == 200


async def test_missing_user_header_is_rejected(api_client):
    response = await api_client.get("/api/v1/jobs")
    assert response.status_code == 422


async def test_list_jobs_with_counters_and_token(api_client, headers, add_jobs):
    jobs = await add_jobs(1, 2, 3)
    await add_jobs(4, status=JobStatus.ARCHIVED)

    response = await api_client.get("/api/v1/jobs", params={"limit": 2}, headers=headers)
    assert response.status_code == 200
    body = response.json()

    assert [job["id"] for job in body["jobs"]] == [jobs[2].id, jobs[1].id]
    assert (body["new"], body["applied"], body["archived"]) == (3, 0, 1)
    assert body["next_page_token"]

    response = await api_client.get(
        "/api/v1/jobs",
        params={"limit": 2, "after": body["next_page_token"]},
        headers=headers,
    )
    body = response.json()
    assert [job["id"] for job in body["jobs"]] == [jobs[0].id]
    assert body["next_page_token"] is None


async def test_list_jobs_rejects_bad_token(api_client, headers):
    response = await api_client.get(
        "/api/v1/jobs", params={"after": "garbage"}, headers=headers
    )
    assert response.status_code == 400


async def test_list_jobs_rejects_oversized_page(api_client, headers):
    response = await api_client.get(
        "/api/v1/jobs", params={"limit": 10_000}, headers=headers
    )
    assert response.status_code == 422


async def test_get_job(api_client, headers, add_jobs):
    (job,) = await add_jobs(1)

    response = await api_client.get(f"/api/v1/jobs/{job.id}", headers=headers)
    assert response.status_code == 200
    assert response.json()["status"] == "new"

    response = await api_client.get(
        f"/api/v1/jobs/{job.id}", headers={"X-User-Id": str(uuid4())}
    )
    assert response.status_code == 404


async def test_patch_status(api_client, headers, add_jobs):
    (job,) = await add_jobs(1)

    response = await api_client.patch(
        f"/api/v1/jobs/{job.id}/status", json={"status": "applied"}, headers=headers
    )
    assert response.status_code == 204

    # Repeating the overwrite is harmless
    response = await api_client.patch(
        f"/api/v1/jobs/{job.id}/status", json={"status": "applied"}, headers=headers
    )
    assert response.status_code == 204

    body = (await api_client.get("/api/v1/jobs", headers=headers)).json()
    assert (body["new"], body["applied"], body["archived"]) == (0, 1, 0)


async def test_patch_status_errors(api_client, headers, add_jobs):
    (job,) = await add_jobs(1)

    response = await api_client.patch(
        f"/api/v1/jobs/{job.id}/status",
        json={"status": "excluded_by_advanced_matching"},
        headers=headers,
    )
    assert response.status_code == 400

    response = await api_client.patch(
        "/api/v1/jobs/999999/status", json={"status": "archived"}, headers=headers
    )
    assert response.status_code == 404

    response = await api_client.patch(
        f"/api/v1/jobs/{job.id}/status", json={"status": "starred"}, headers=headers
    )
    assert response.status_code == 422


async def test_bulk_status_change(api_client, headers, add_jobs):
    await add_jobs(1, 2)
    await add_jobs(3, status=JobStatus.APPLIED)

    response = await api_client.post(
        "/api/v1/jobs/status",
        json={"from_status": "new", "to_status": "archived"},
        headers=headers,
    )
    assert response.status_code == 200
    assert response.json() == {"updated": 2}

    response = await api_client.post(
        "/api/v1/jobs/status",
        json={"from_status": "new", "to_status": "excluded_by_advanced_matching"},
        headers=headers,
    )
    assert response.status_code == 400


async def test_ingest_without_subscription_keeps_everything(api_client, headers, fake_llm):
    response = await api_client.post(
        "/api/v1/jobs/ingest",
        json={"jobs": [scraped("a"), scraped("b", company_name="Acme")]},
        headers=headers,
    )

    assert response.status_code == 201
    body = response.json()
    assert len(body["new_jobs"]) == 2
    assert body["excluded"] == 0
    assert fake_llm.calls == []


async def test_ingest_applies_advanced_matching(
    api_client, headers, add_matching_inputs, fake_llm, usage_meter
):
    await add_matching_inputs(blacklisted=("Acme",))
    fake_llm.answer = "Yes"

    response = await api_client.post(
        "/api/v1/jobs/ingest",
        json={
            "jobs": [
                scraped("a", company_name="ACME"),
                scraped("b", description="Java and Spring."),
                scraped("c", description=None),
                scraped("c"),
            ]
        },
        headers=headers,
    )

    assert response.status_code == 201
    body = response.json()
    assert [job["external_id"] for job in body["new_jobs"]] == ["c"]
    assert body["excluded"] == 2
    assert body["duplicates"] == 1
    # Deny-listed and description-less jobs never reach the LLM
    assert len(fake_llm.calls) == 1

    await usage_meter.drain()
    usage = (await api_client.get("/api/v1/advanced-matching/usage", headers=headers)).json()
    assert usage["call_count"] == 1
    assert usage["input_tokens"] == 120
    assert usage["output_tokens"] == 1

    # Excluded jobs are invisible to every tab
    listing = (await api_client.get("/api/v1/jobs", headers=headers)).json()
    assert (listing["new"], listing["applied"], listing["archived"]) == (1, 0, 0)


async def test_ingest_skips_jobs_already_stored(api_client, headers):
    first = await api_client.post(
        "/api/v1/jobs/ingest", json={"jobs": [scraped("a")]}, headers=headers
    )
    assert first.status_code == 201

    again = await api_client.post(
        "/api/v1/jobs/ingest", json={"jobs": [scraped("a"), scraped("b")]}, headers=headers
    )
    body = again.json()
    assert [job["external_id"] for job in body["new_jobs"]] == ["b"]
    assert body["duplicates"] == 1


async def test_advanced_matching_config_round_trip(api_client, headers):
    response = await api_client.get("/api/v1/advanced-matching", headers=headers)
    assert response.status_code == 404

    response = await api_client.put(
        "/api/v1/advanced-matching",
        json={"chatgpt_prompt": "No crypto.", "blacklisted_companies": ["Acme", "acme"]},
        headers=headers,
    )
    assert response.status_code == 200
    assert response.json()["blacklisted_companies"] == ["Acme"]

    response = await api_client.get("/api/v1/advanced-matching", headers=headers)
    assert response.json()["chatgpt_prompt"] == "No crypto."


async def test_usage_defaults_to_zero(api_client, headers):
    response = await api_client.get("/api/v1/advanced-matching/usage", headers=headers)

    assert response.status_code == 200
    assert response.json() == {
        "call_count": 0,
        "cost": 0.0,
        "input_tokens": 0,
        "output_tokens": 0,
    }


async def test_ingest_llm_outage_is_bad_gateway_and_stores_nothing(
    api_client, headers, add_matching_inputs, fake_llm, session_factory
):
    await add_matching_inputs(blacklisted=())

    async def unavailable(system, user, **params):
        raise RemoteCallError("Service Unavailable", status_code=503)

    fake_llm.complete = unavailable

    response = await api_client.post(
        "/api/v1/jobs/ingest",
        json={"jobs": [scraped("a"), scraped("b")]},
        headers=headers,
    )

    assert response.status_code == 502
    assert "Service Unavailable" in response.json()["detail"]
    async with session_factory() as session:
        stored = await session.execute(select(func.count()).select_from(Job))
        assert stored.scalar_one() == 0


async def test_patch_labels(api_client, headers, add_jobs):
    older, newer = await add_jobs(1, 2)

    response = await api_client.patch(
        f"/api/v1/jobs/{older.id}/labels",
        json={"labels": [" remote ", "Remote", "", "startup"]},
        headers=headers,
    )
    assert response.status_code == 200
    assert response.json()["labels"] == ["remote", "startup"]

    # Labelling does not move the job
    listing = (await api_client.get("/api/v1/jobs", headers=headers)).json()
    assert [job["id"] for job in listing["jobs"]] == [newer.id, older.id]
    assert listing["jobs"][1]["labels"] == ["remote", "startup"]


async def test_patch_labels_errors(api_client, headers, add_jobs):
    (job,) = await add_jobs(1, status=JobStatus.EXCLUDED_BY_ADVANCED_MATCHING)

    response = await api_client.patch(
        f"/api/v1/jobs/{job.id}/labels", json={"labels": ["x"]}, headers=headers
    )
    assert response.status_code == 404

    response = await api_client.patch(
        f"/api/v1/jobs/{job.id}/labels",
        json={"labels": [f"label-{i}" for i in range(21)]},
        headers=headers,
    )
    assert response.status_code == 422


async def test_list_sites(api_client, db):
    db.add_all([
        Site(name="LinkedIn", urls=["https://www.linkedin.com/jobs"]),
        Site(name="Indeed", urls=[], query_params_to_remove=["from"]),
    ])
    await db.commit()

    response = await api_client.get("/api/v1/sites")

    assert response.status_code == 200
    body = response.json()
    assert [site["name"] for site in body] == ["LinkedIn", "Indeed"]
    assert body[1]["query_params_to_remove"] == ["from"]
