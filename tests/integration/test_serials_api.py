"""
HTTP tests for serial assignment and forward / reverse traceability.
"""

import pytest
from mrp.models import WorkOrderStatus


class TestAssignSerial:
    """POST /workorders/<id>/serials."""

    def test_serial_is_globally_unique(self, client, make_work_order, serials_of):
        """SN-001 on order A blocks SN-001 on order B."""
        wo_a = make_work_order('ASY-1')
        wo_b = make_work_order('ASY-1')

        first = client.post(f'/workorders/{wo_a}/serials', json={'serial_number': 'SN-001'})
        second = client.post(f'/workorders/{wo_b}/serials', json={'serial_number': 'SN-001'})

        assert first.status_code == 200
        assert first.get_json()['status'] == 'building'
        assert second.status_code == 409
        assert second.get_json()['serial_number'] == 'SN-001'
        assert serials_of(wo_a) == ['SN-001']
        assert serials_of(wo_b) == []

    def test_generated_serial_uses_assembly_prefix(self, client, make_work_order):
        wo_id = make_work_order('PCA-MAIN-V1.0')

        data = client.post(f'/workorders/{wo_id}/serials', json={}).get_json()

        assert data['serial_number'].startswith('PCA')
        assert len(data['serial_number']) >= 15
        assert data['wo_id'] == wo_id

    def test_generated_serial_without_body(self, client, make_work_order):
        wo_id = make_work_order('x-test')
        data = client.post(f'/workorders/{wo_id}/serials').get_json()
        assert data['serial_number'].startswith('X')

    def test_generated_serials_do_not_collide(self, client, make_work_order, serials_of):
        wo_id = make_work_order('PCA-MAIN-V1.0')

        for _ in range(3):
            assert client.post(f'/workorders/{wo_id}/serials', json={}).status_code == 200

        serials = serials_of(wo_id)
        assert len(set(serials)) == 3
        assert all(s.startswith('PCA') for s in serials)

    def test_initial_status_and_notes(self, client, make_work_order):
        wo_id = make_work_order('ASY-1')
        data = client.post(f'/workorders/{wo_id}/serials',
                           json={'serial_number': 'SN-9', 'status': 'testing', 'notes': 'bench 2'}).get_json()
        assert data['status'] == 'testing'
        assert data['notes'] == 'bench 2'

    def test_invalid_status(self, client, make_work_order, serials_of):
        wo_id = make_work_order('ASY-1')
        response = client.post(f'/workorders/{wo_id}/serials', json={'serial_number': 'SN-1', 'status': 'shipped'})
        assert response.status_code == 400
        assert 'status' in response.get_json()['errors']
        assert serials_of(wo_id) == []

    @pytest.mark.parametrize('serial', ['  SN-001 ', 'SN-001\n', '   '])
    def test_surrounding_whitespace_is_rejected(self, client, make_work_order, serials_of, serial):
        wo_id = make_work_order('ASY-1')
        response = client.post(f'/workorders/{wo_id}/serials', json={'serial_number': serial})
        assert response.status_code == 400
        assert 'serial_number' in response.get_json()['errors']
        assert serials_of(wo_id) == []

    def test_unknown_work_order(self, client):
        assert client.post('/workorders/WO-NOPE/serials', json={'serial_number': 'SN-1'}).status_code == 404

    @pytest.mark.parametrize('status', [WorkOrderStatus.COMPLETED, WorkOrderStatus.CANCELLED])
    def test_terminal_work_order(self, client, make_work_order, serials_of, status):
        wo_id = make_work_order('ASY-1', status=status)
        response = client.post(f'/workorders/{wo_id}/serials', json={'serial_number': 'SN-1'})
        assert response.status_code == 409
        assert serials_of(wo_id) == []


class TestTraceability:
    """Forward and reverse lookups."""

    def test_forward_trace(self, client, make_work_order):
        wo_id = make_work_order('ASY-1')
        for sn in ('SN-A', 'SN-B'):
            client.post(f'/workorders/{wo_id}/serials', json={'serial_number': sn})

        data = client.get(f'/workorders/{wo_id}/serials').get_json()

        assert [s['serial_number'] for s in data] == ['SN-A', 'SN-B']
        assert client.get('/workorders/WO-NOPE/serials').status_code == 404

    def test_reverse_trace(self, client, make_work_order):
        wo_id = make_work_order('PCA-MAIN-V1.0', status=WorkOrderStatus.IN_PROGRESS)
        client.post(f'/workorders/{wo_id}/serials', json={'serial_number': 'SN-42'})

        data = client.get('/serials/SN-42').get_json()

        assert data['wo_id'] == wo_id
        assert data['assembly_ipn'] == 'PCA-MAIN-V1.0'
        assert data['wo_status'] == 'in_progress'
        assert client.get('/serials/SN-404').status_code == 404

    def test_delete_cascades_only_own_serials(self, client, make_work_order, serials_of):
        wo_a = make_work_order('ASY-1')
        wo_b = make_work_order('ASY-1')
        client.post(f'/workorders/{wo_a}/serials', json={'serial_number': 'A-1'})
        client.post(f'/workorders/{wo_a}/serials', json={'serial_number': 'A-2'})
        client.post(f'/workorders/{wo_b}/serials', json={'serial_number': 'B-1'})

        response = client.delete(f'/workorders/{wo_a}')

        assert response.get_json()['serials_deleted'] == 2
        assert serials_of(wo_a) == []
        assert serials_of(wo_b) == ['B-1']
        assert client.get('/serials/A-1').status_code == 404
        assert client.get('/serials/B-1').status_code == 200


class TestSerialStatus:
    """PUT /serials/<serial>."""

    def _serial(self, client, make_work_order, sn='SN-1'):
        wo_id = make_work_order('ASY-1')
        client.post(f'/workorders/{wo_id}/serials', json={'serial_number': sn})
        return sn

    def test_happy_path(self, client, make_work_order):
        sn = self._serial(client, make_work_order)

        assert client.put(f'/serials/{sn}', json={'status': 'testing'}).get_json()['status'] == 'testing'
        assert client.put(f'/serials/{sn}', json={'status': 'complete'}).get_json()['status'] == 'complete'

    def test_backwards_move_is_409(self, client, make_work_order):
        sn = self._serial(client, make_work_order)
        client.put(f'/serials/{sn}', json={'status': 'testing'})

        response = client.put(f'/serials/{sn}', json={'status': 'building'})

        assert response.status_code == 409
        assert client.get(f'/serials/{sn}').get_json()['status'] == 'testing'

    def test_scrap_from_building(self, client, make_work_order):
        sn = self._serial(client, make_work_order)
        data = client.put(f'/serials/{sn}', json={'status': 'scrapped', 'notes': 'cracked board'}).get_json()
        assert data['status'] == 'scrapped'
        assert data['notes'] == 'cracked board'

    def test_invalid_status_and_unknown_serial(self, client, make_work_order):
        sn = self._serial(client, make_work_order)
        assert client.put(f'/serials/{sn}', json={'status': 'lost'}).status_code == 400
        assert client.put('/serials/SN-404', json={'status': 'testing'}).status_code == 404

    def test_body_must_be_object(self, client, make_work_order):
        sn = self._serial(client, make_work_order)
        assert client.put(f'/serials/{sn}', json=['testing']).status_code == 400
