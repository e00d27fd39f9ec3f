"""Tests for siteiq.routes.input_sets: ingestion endpoint and idempotent replays."""

ROWS = [
    {'site_id': 'S-1', 'city': 'Austin', 'unemployment_rate': '4.1', 'labor_cost_index': '96'},
    {'site_id': 'S-2', 'city': 'Reno', 'unemployment_rate': '5.3', 'labor_cost_index': '104'},
]


class TestCreateInputSet:

    def test_requires_tenant_header(self, client):
        resp = client.post('/api/input-sets', json={'rows': ROWS})
        assert resp.status_code == 400
        assert 'X-Tenant-ID' in resp.json['error']

    def test_rows_must_be_a_list_of_objects(self, client, tenant_headers):
        resp = client.post('/api/input-sets', json={'rows': 'S-1,4.1'}, headers=tenant_headers)
        assert resp.status_code == 400

    def test_creates_valid_input_set(self, client, tenant_headers, seeded_configs):
        resp = client.post('/api/input-sets', json={'name': 'q3', 'rows': ROWS}, headers=tenant_headers)

        assert resp.status_code == 201
        body = resp.json
        assert body['validation_status'] == 'valid'
        assert body['row_count'] == 2
        assert body['name'] == 'q3'
        assert body['schema_version'] == '1.0'

    def test_invalid_headers_return_422(self, client, tenant_headers, seeded_configs):
        resp = client.post('/api/input-sets', json={'rows': [{'city': 'Austin'}]}, headers=tenant_headers)
        assert resp.status_code == 422
        assert resp.json['validation_status'] == 'invalid'
        assert resp.json['errors']

    def test_missing_global_config(self, client, tenant_headers):
        resp = client.post('/api/input-sets', json={'rows': ROWS}, headers=tenant_headers)
        assert resp.status_code == 500

    def test_broken_tenant_config_maps_to_500(self, client, tenant_headers, config_store, global_config):
        config_store.save_config(None, '1.0', global_config)
        config_store.save_config('tenant-acme', '1.0', {'weights': {'ghost_field': 1.0}})

        resp = client.post('/api/input-sets', json={'rows': ROWS}, headers=tenant_headers)

        assert resp.status_code == 500
        assert 'ghost_field' in resp.json['error']

    def test_idempotent_replay_returns_existing_set(self, client, tenant_headers, seeded_configs):
        headers = dict(tenant_headers, **{'Idempotency-Key': 'upload-1'})
        first = client.post('/api/input-sets', json={'rows': ROWS}, headers=headers)
        second = client.post('/api/input-sets', json={'rows': ROWS[:1]}, headers=headers)

        assert first.status_code == 201
        assert second.status_code == 409
        assert second.json['input_set_id'] == first.json['input_set_id']
        assert second.json['row_count'] == 2


class TestGetInputSet:

    def test_found(self, client, tenant_headers, make_input_set):
        input_set = make_input_set([('a', {})])
        resp = client.get(f'/api/input-sets/{input_set.id}', headers=tenant_headers)
        assert resp.status_code == 200
        assert resp.json['input_set_id'] == input_set.id

    def test_other_tenant_gets_404(self, client, make_input_set):
        input_set = make_input_set([('a', {})])
        resp = client.get(f'/api/input-sets/{input_set.id}', headers={'X-Tenant-ID': 'someone-else'})
        assert resp.status_code == 404
