from datetime import datetime, timedelta, timezone

from fixly.routers.jobs import count_view
from fixly.services import job_repository
from fixly.utils.cache import browse_cache
from fixly.utils.performance import performance_monitor


class TestPostJob:
    def test_post_job(self, api, client, hirer):
        job_id = api.post_job(hirer, skills_required=["Plumbing", " Pipe Fitting "])
        r = client.get(f"/api/v1/jobs/{job_id}", headers=hirer)
        assert r.status_code == 200
        data = r.json()
        assert data["status"] == "open"
        assert data["skills_required"] == ["plumbing", "pipe fitting"]
        assert data["application_count"] == 0
        assert data["applications"] == []
        assert data["time_remaining"] == "4 days"

        me = client.get("/api/v1/users/me", headers=hirer).json()
        assert me["jobs_posted"] == 1

    def test_fixer_cannot_post(self, api, client, fixer):
        r = client.post("/api/v1/jobs/post", json=api.payload(), headers=fixer)
        assert r.status_code == 403

    def test_past_deadline(self, api, client, hirer):
        past = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
        r = client.post("/api/v1/jobs/post", json=api.payload(deadline=past), headers=hirer)
        assert r.status_code == 400
        assert "Deadline" in r.json()["detail"]

    def test_short_description(self, api, client, hirer):
        r = client.post("/api/v1/jobs/post", json=api.payload(description="Too short"), headers=hirer)
        assert r.status_code == 400

    def test_featured_job(self, api, client, hirer):
        job_id = api.post_job(hirer, featured=True)
        data = client.get(f"/api/v1/jobs/{job_id}", headers=hirer).json()
        assert data["featured"] is True
        assert data["featured_until"] is not None

    def test_my_jobs(self, api, client, hirer):
        api.post_job(hirer)
        api.post_job(hirer)
        r = client.get("/api/v1/jobs/post", headers=hirer)
        assert r.status_code == 200
        assert r.json()["total"] == 2

        r = client.get("/api/v1/jobs/post?status=completed", headers=hirer)
        assert r.json()["total"] == 0

    def test_missing_job(self, client, hirer):
        assert client.get("/api/v1/jobs/does-not-exist", headers=hirer).status_code == 404


class TestBrowse:
    def test_browse_filters(self, api, client, hirer, fixer):
        api.post_job(hirer, title="Fix bathroom tap leak")
        api.post_job(hirer, title="Wire a new kitchen socket", skills_required=["electrical"],
                     location={"address": "3 Hill Rd", "city": "Mumbai", "state": "Maharashtra"})

        r = client.get("/api/v1/jobs/browse", headers=fixer)
        assert r.json()["total"] == 2

        r = client.get("/api/v1/jobs/browse?skills=Electrical", headers=fixer)
        assert [j["title"] for j in r.json()["jobs"]] == ["Wire a new kitchen socket"]

        r = client.get("/api/v1/jobs/browse?city=pune", headers=fixer)
        assert [j["title"] for j in r.json()["jobs"]] == ["Fix bathroom tap leak"]

    def test_browse_is_cached_and_invalidated(self, api, client, hirer, fixer):
        api.post_job(hirer)
        client.get("/api/v1/jobs/browse", headers=fixer)
        hits = performance_monitor.cache_hits
        r = client.get("/api/v1/jobs/browse", headers=fixer)
        assert r.json()["total"] == 1
        assert performance_monitor.cache_hits == hits + 1

        api.post_job(hirer)
        assert len(browse_cache) == 0
        assert client.get("/api/v1/jobs/browse", headers=fixer).json()["total"] == 2

    def test_pagination(self, api, client, hirer, fixer):
        for _ in range(3):
            api.post_job(hirer)
        r = client.get("/api/v1/jobs/browse?page=2&per_page=2", headers=fixer)
        data = r.json()
        assert data["total"] == 3
        assert len(data["jobs"]) == 1

    def test_urgent(self, api, client, hirer, fixer):
        soon = (datetime.now(timezone.utc) + timedelta(hours=5)).isoformat()
        urgent_id = api.post_job(hirer, deadline=soon)
        api.post_job(hirer)
        r = client.get("/api/v1/jobs/urgent", headers=fixer)
        assert [j["id"] for j in r.json()] == [urgent_id]
        assert r.json()[0]["is_urgent"] is True


class TestUpdateAndCancel:
    def test_update_details(self, api, client, hirer):
        job_id = api.post_job(hirer)
        r = client.put(f"/api/v1/jobs/{job_id}", json={
            "action": "update_details",
            "data": {"title": "Fix leaking sink and tap", "budget": {"type": "fixed", "amount": 1800}},
        }, headers=hirer)
        assert r.status_code == 200
        assert r.json()["title"] == "Fix leaking sink and tap"
        assert r.json()["budget"]["amount"] == 1800

    def test_update_by_other_user(self, api, client, hirer, fixer):
        job_id = api.post_job(hirer)
        r = client.put(f"/api/v1/jobs/{job_id}", json={"action": "cancel_job", "data": {}}, headers=fixer)
        assert r.status_code == 403

    def test_update_details_validation(self, api, client, hirer):
        job_id = api.post_job(hirer)
        r = client.put(f"/api/v1/jobs/{job_id}", json={
            "action": "update_details", "data": {"title": "short"},
        }, headers=hirer)
        assert r.status_code == 400

    def test_cancel_via_action(self, api, client, hirer):
        job_id = api.post_job(hirer)
        r = client.put(f"/api/v1/jobs/{job_id}", json={
            "action": "cancel_job", "data": {"reason": "Fixed it myself"},
        }, headers=hirer)
        assert r.status_code == 200
        assert r.json()["status"] == "cancelled"
        assert r.json()["cancellation"]["reason"] == "Fixed it myself"

    def test_cancel_endpoint(self, api, client, hirer):
        job_id = api.post_job(hirer)
        r = client.post(f"/api/v1/jobs/{job_id}/cancel", json={}, headers=hirer)
        assert r.status_code == 200
        assert r.json()["cancellation"]["reason"] == "No reason provided"

        r = client.post(f"/api/v1/jobs/{job_id}/cancel", json={}, headers=hirer)
        assert r.status_code == 409

    def test_stranger_cannot_cancel(self, api, client, hirer, fixer):
        job_id = api.post_job(hirer)
        r = client.post(f"/api/v1/jobs/{job_id}/cancel", json={}, headers=fixer)
        assert r.status_code == 403


class TestViews:
    def test_view_counted_once(self, api, client, hirer, fixer):
        job_id = api.post_job(hirer)
        first = client.post(f"/api/v1/jobs/{job_id}/view", headers=fixer).json()
        second = client.post(f"/api/v1/jobs/{job_id}/view", headers=fixer).json()
        assert first == {"counted": True, "views": 1}
        assert second == {"counted": False, "views": 1}

    def test_creator_view_ignored(self, api, client, hirer):
        job_id = api.post_job(hirer)
        r = client.post(f"/api/v1/jobs/{job_id}/view", headers=hirer)
        assert r.json()["counted"] is False


class TestConcurrentViews:
    def test_stale_view_is_retried(self, api, db, hirer):
        job_id = api.post_job(hirer)
        stale = job_repository.get(db, job_id)
        fresh = job_repository.get(db, job_id)
        fresh.add_view("viewer-a")
        job_repository.save(db, fresh)

        job, counted = count_view(db, stale, "viewer-b")
        assert counted is True
        assert job.views == 2
        assert job_repository.get(db, job_id).views == 2

    def test_stale_duplicate_view_not_counted(self, api, db, hirer):
        job_id = api.post_job(hirer)
        stale = job_repository.get(db, job_id)
        fresh = job_repository.get(db, job_id)
        fresh.add_view("viewer-a")
        job_repository.save(db, fresh)

        job, counted = count_view(db, stale, "viewer-a")
        assert counted is False
        assert job_repository.get(db, job_id).views == 1
