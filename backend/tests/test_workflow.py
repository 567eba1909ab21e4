class TestApplications:
    def test_apply(self, api, client, hirer, fixer):
        job_id = api.post_job(hirer)
        r = api.apply(job_id, fixer)
        assert r.status_code == 201
        assert r.json()["status"] == "pending"

        detail = client.get(f"/api/v1/jobs/{job_id}", headers=fixer).json()
        assert detail["has_applied"] is True
        assert detail["can_apply"] is False
        assert detail["applications"] is None
        assert detail["my_application"]["proposed_amount"] == 1400

    def test_apply_twice(self, api, hirer, fixer):
        job_id = api.post_job(hirer)
        api.apply(job_id, fixer)
        assert api.apply(job_id, fixer).status_code == 409

    def test_hirer_cannot_apply(self, api, hirer):
        job_id = api.post_job(hirer)
        assert api.apply(job_id, hirer).status_code == 403

    def test_invalid_amount(self, api, hirer, fixer):
        job_id = api.post_job(hirer)
        assert api.apply(job_id, fixer, amount=0).status_code == 422

    def test_list_applications(self, api, client, hirer, fixer):
        other = api.signup("fixer_two", role="fixer")
        job_id = api.post_job(hirer)
        api.apply(job_id, fixer)
        api.apply(job_id, other, amount=1300)

        r = client.get(f"/api/v1/jobs/{job_id}/applications", headers=hirer)
        assert r.json()["total_applications"] == 2
        assert len(r.json()["applications"]) == 2

        r = client.get(f"/api/v1/jobs/{job_id}/applications", headers=fixer)
        assert len(r.json()["applications"]) == 1

        outsider = api.signup("fixer_three", role="fixer")
        r = client.get(f"/api/v1/jobs/{job_id}/applications", headers=outsider)
        assert r.status_code == 403

    def test_withdraw_and_reapply(self, api, client, hirer, fixer):
        job_id = api.post_job(hirer)
        api.apply(job_id, fixer)
        r = client.post(f"/api/v1/jobs/{job_id}/applications/withdraw", headers=fixer)
        assert r.status_code == 200
        assert r.json()["status"] == "withdrawn"
        assert api.apply(job_id, fixer, amount=1350).status_code == 201

        r = client.post(f"/api/v1/jobs/{job_id}/applications/withdraw", headers=hirer)
        assert r.status_code == 404

    def test_accept_rejects_others(self, api, client, hirer, fixer):
        other = api.signup("fixer_two", role="fixer")
        job_id = api.post_job(hirer)
        chosen = api.apply(job_id, fixer).json()["id"]
        api.apply(job_id, other, amount=1300)

        r = api.accept(job_id, chosen, hirer)
        assert r.status_code == 200
        data = r.json()
        assert data["status"] == "in_progress"
        assert sorted(a["status"] for a in data["applications"]) == ["accepted", "rejected"]
        assert data["progress"]["started_at"] is not None

        assigned = client.get("/api/v1/jobs/assigned", headers=fixer).json()
        assert [j["id"] for j in assigned["jobs"]] == [job_id]

    def test_accept_unknown_application(self, api, hirer):
        job_id = api.post_job(hirer)
        assert api.accept(job_id, "missing", hirer).status_code == 404

    def test_reject_application(self, api, client, hirer, fixer):
        job_id = api.post_job(hirer)
        application_id = api.apply(job_id, fixer).json()["id"]
        r = client.put(f"/api/v1/jobs/{job_id}", json={
            "action": "reject_application", "data": {"application_id": application_id},
        }, headers=hirer)
        assert r.status_code == 200
        assert r.json()["applications"][0]["status"] == "rejected"


class TestCompletion:
    def test_full_workflow(self, api, client, hirer, fixer):
        job_id = api.assigned_job(hirer, fixer)

        r = client.post(f"/api/v1/jobs/{job_id}/complete", json={"notes": "Replaced the trap"}, headers=fixer)
        assert r.status_code == 200
        assert r.json()["status"] == "completed"
        assert r.json()["completion"]["marked_done_at"] is not None

        r = client.post(f"/api/v1/jobs/{job_id}/confirm", json={"rating": 5, "review": "Spotless"}, headers=hirer)
        assert r.status_code == 200
        completion = r.json()["completion"]
        assert completion["rating"] == 5
        assert completion["confirmed_at"] is not None

        me = client.get("/api/v1/users/me", headers=fixer).json()
        assert me["jobs_completed"] == 1
        assert me["total_earnings"] == 1500
        assert me["rating_count"] == 0

    def test_confirm_then_rating_counts_once(self, api, client, hirer, fixer):
        job_id = api.assigned_job(hirer, fixer)
        client.post(f"/api/v1/jobs/{job_id}/complete", json={}, headers=fixer)
        client.post(f"/api/v1/jobs/{job_id}/confirm", json={"rating": 5}, headers=hirer)

        r = client.post(f"/api/v1/jobs/{job_id}/rating", json={"rating": 1}, headers=hirer)
        assert r.status_code == 200

        profile = client.get("/api/v1/users/fixer_one", headers=hirer).json()
        assert profile["rating_count"] == 1
        assert profile["rating_average"] == 1

    def test_mark_done_by_hirer(self, api, client, hirer, fixer):
        job_id = api.assigned_job(hirer, fixer)
        r = client.post(f"/api/v1/jobs/{job_id}/complete", json={}, headers=hirer)
        assert r.status_code == 403

    def test_confirm_before_done(self, api, client, hirer, fixer):
        job_id = api.assigned_job(hirer, fixer)
        r = client.post(f"/api/v1/jobs/{job_id}/confirm", json={"rating": 5}, headers=hirer)
        assert r.status_code == 409

    def test_confirm_rating_range(self, api, client, hirer, fixer):
        job_id = api.assigned_job(hirer, fixer)
        client.post(f"/api/v1/jobs/{job_id}/complete", json={}, headers=fixer)
        r = client.post(f"/api/v1/jobs/{job_id}/confirm", json={"rating": 9}, headers=hirer)
        assert r.status_code == 422

    def test_mutual_ratings(self, api, client, hirer, fixer):
        job_id = api.assigned_job(hirer, fixer)
        client.post(f"/api/v1/jobs/{job_id}/complete", json={}, headers=fixer)

        r = client.post(f"/api/v1/jobs/{job_id}/rating", json={
            "rating": 4, "review": "Good", "categories": {"quality": 4},
        }, headers=hirer)
        assert r.status_code == 200
        assert r.json()["categories"]["quality"] == 4

        r = client.post(f"/api/v1/jobs/{job_id}/rating", json={"rating": 5}, headers=fixer)
        assert r.status_code == 200

        r = client.post(f"/api/v1/jobs/{job_id}/rating", json={"rating": 5}, headers=fixer)
        assert r.status_code == 409

        hirer_profile = client.get("/api/v1/users/me", headers=hirer).json()
        assert hirer_profile["rating_average"] == 5

    def test_milestones(self, api, client, hirer, fixer):
        job_id = api.assigned_job(hirer, fixer)
        r = client.post(f"/api/v1/jobs/{job_id}/milestones", json={"title": "Remove old pipe"}, headers=fixer)
        assert r.status_code == 201
        milestone_id = r.json()["id"]

        r = client.post(f"/api/v1/jobs/{job_id}/milestones/{milestone_id}/complete", headers=hirer)
        assert r.status_code == 200
        assert r.json()["completed"] is True

        r = client.post(f"/api/v1/jobs/{job_id}/milestones/missing/complete", headers=hirer)
        assert r.status_code == 404

    def test_work_images(self, api, client, hirer, fixer):
        job_id = api.assigned_job(hirer, fixer)
        r = client.post(f"/api/v1/jobs/{job_id}/work-images", json={
            "url": "https://img.example.com/before.png", "caption": "Before",
        }, headers=fixer)
        assert r.status_code == 201

        r = client.post(f"/api/v1/jobs/{job_id}/work-images", json={"url": "not-a-url"}, headers=fixer)
        assert r.status_code == 400


class TestDisputes:
    def test_raise_and_resolve(self, api, client, hirer, fixer):
        admin = api.admin()
        job_id = api.assigned_job(hirer, fixer)

        r = client.post(f"/api/v1/jobs/{job_id}/dispute", json={
            "reason": "Incomplete work", "description": "The tap still drips after the repair.",
        }, headers=hirer)
        assert r.status_code == 201
        assert r.json()["raised_by"] is not None
        assert client.get(f"/api/v1/jobs/{job_id}", headers=hirer).json()["status"] == "disputed"

        r = client.put(f"/api/v1/jobs/{job_id}/dispute", json={"status": "resolved"}, headers=hirer)
        assert r.status_code == 403

        r = client.put(f"/api/v1/jobs/{job_id}/dispute", json={
            "status": "resolved", "resolution": "Fixer returns to finish",
        }, headers=admin)
        assert r.status_code == 200
        assert r.json()["status"] == "resolved"
        assert r.json()["resolved_at"] is not None

    def test_outsider_cannot_dispute(self, api, client, hirer, fixer):
        outsider = api.signup("fixer_two", role="fixer")
        job_id = api.assigned_job(hirer, fixer)
        r = client.post(f"/api/v1/jobs/{job_id}/dispute", json={
            "reason": "x", "description": "y",
        }, headers=outsider)
        assert r.status_code == 403
        assert client.get(f"/api/v1/jobs/{job_id}", headers=hirer).json()["dispute"]["raised"] is False

    def test_second_dispute(self, api, client, hirer, fixer):
        job_id = api.assigned_job(hirer, fixer)
        body = {"reason": "Late", "description": "Work is two days late."}
        client.post(f"/api/v1/jobs/{job_id}/dispute", json=body, headers=hirer)
        r = client.post(f"/api/v1/jobs/{job_id}/dispute", json=body, headers=fixer)
        assert r.status_code == 409
