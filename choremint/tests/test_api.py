"""Tests for the points, goals and evolution API endpoints."""

from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from choremint.models import GoalHistory, REASON_CHORE_APPROVED
from choremint.services.ledger_service import LedgerService


class TestAppendPoints:
    """Tests for POST /api/points/append endpoint."""

    def test_append_success(self, client, child, db_session):
        response = client.post('/api/points/append', json={
            'child_id': child.id,
            'delta': 10,
            'reason': 'chore_approved',
            'submission_id': 'sub-100',
            'created_by': 'parent-1'
        })
        assert response.status_code == 201

        data = response.get_json()
        assert data['message'] == 'Points recorded'
        assert data['data']['entry']['delta'] == 10
        assert data['data']['entry']['submission_id'] == 'sub-100'
        assert data['data']['entry']['created_by'] == 'parent-1'
        assert data['data']['balance'] == 10
        assert data['data']['achievement']['achieved'] is False

    def test_append_achieves_goal(self, client, child, goal_config, db_session):
        response = client.post('/api/points/append', json={
            'child_id': child.id,
            'delta': 110,
            'reason': 'chore_approved'
        })
        assert response.status_code == 201

        data = response.get_json()
        assert data['message'] == 'Goal achieved!'
        assert data['data']['balance'] == 10
        achievement = data['data']['achievement']
        assert achievement['goal_history']['balance_at_achievement'] == 110
        assert achievement['rollover_entry']['delta'] == -100

    def test_retried_submission_credits_once(self, client, child, db_session):
        payload = {'child_id': child.id, 'delta': 10, 'reason': 'chore_approved', 'submission_id': 'abc'}

        first = client.post('/api/points/append', json=payload)
        second = client.post('/api/points/append', json=payload)

        assert first.status_code == 201
        assert second.status_code == 201
        assert first.get_json()['data']['entry']['id'] == second.get_json()['data']['entry']['id']
        assert LedgerService.sum_for(child.id) == 10

    def test_manual_adjustment_with_note(self, client, child, db_session):
        response = client.post('/api/points/append', json={
            'child_id': child.id,
            'delta': -5,
            'reason': 'manual_adjustment',
            'note': 'Broke a rule'
        })
        assert response.status_code == 201
        assert response.get_json()['data']['entry']['note'] == 'Broke a rule'
        assert response.get_json()['data']['balance'] == -5

    def test_missing_fields(self, client, child):
        response = client.post('/api/points/append', json={'child_id': child.id, 'delta': 5})
        assert response.status_code == 400
        assert 'Missing required fields' in response.get_json()['message']

    def test_no_body(self, client, child):
        response = client.post('/api/points/append')
        assert response.status_code == 400

    def test_invalid_child_id(self, client, child):
        response = client.post('/api/points/append', json={
            'child_id': 'abc', 'delta': 5, 'reason': 'chore_approved'
        })
        assert response.status_code == 400

    def test_zero_delta(self, client, child, db_session):
        response = client.post('/api/points/append', json={
            'child_id': child.id, 'delta': 0, 'reason': 'chore_approved'
        })
        assert response.status_code == 400
        assert response.get_json()['error'] == 'Validation Error'
        assert LedgerService.count_for(child.id) == 0

    def test_unknown_reason(self, client, child):
        response = client.post('/api/points/append', json={
            'child_id': child.id, 'delta': 5, 'reason': 'birthday'
        })
        assert response.status_code == 400

    def test_rollover_reason_not_accepted(self, client, child, db_session):
        response = client.post('/api/points/append', json={
            'child_id': child.id, 'delta': -100, 'reason': 'goal_achieved_reset'
        })
        assert response.status_code == 400
        assert LedgerService.count_for(child.id) == 0

    def test_unknown_child(self, client, db_session):
        response = client.post('/api/points/append', json={
            'child_id': 999, 'delta': 5, 'reason': 'chore_approved'
        })
        assert response.status_code == 404
        assert response.get_json()['error'] == 'Not Found Error'

    def test_achievement_failure_keeps_credit_and_reports_pending(self, client, child, goal_config, db_session):
        error = OperationalError('UPDATE evolution_slots', {}, Exception('database is locked'))
        with patch('choremint.services.goal_service.EvolutionService.complete_slot', side_effect=error):
            response = client.post('/api/points/append', json={
                'child_id': child.id, 'delta': 100, 'reason': 'chore_approved'
            })

        assert response.status_code == 202
        data = response.get_json()
        assert data['message'] == 'Points recorded, goal processing pending'
        assert data['data']['achievement_pending'] is True
        assert data['data']['entry']['delta'] == 100
        assert data['data']['balance'] == 100
        assert data['data']['evaluate_url'] == f'/api/goals/{child.id}/evaluate'
        assert GoalHistory.query.count() == 0

        evaluated = client.post(data['data']['evaluate_url'])

        assert evaluated.status_code == 200
        assert evaluated.get_json()['data']['achieved'] is True
        assert LedgerService.sum_for(child.id) == 0

    def test_pending_manual_adjustment_is_credited_once(self, client, child, goal_config, db_session):
        error = OperationalError('UPDATE evolution_slots', {}, Exception('database is locked'))
        with patch('choremint.services.goal_service.EvolutionService.refresh_current_slot', side_effect=error):
            response = client.post('/api/points/append', json={
                'child_id': child.id, 'delta': 20, 'reason': 'manual_adjustment'
            })

        assert response.status_code == 202
        assert LedgerService.count_for(child.id) == 1
        assert LedgerService.sum_for(child.id) == 20

    def test_submission_of_another_child_conflicts(self, client, child, child_2, db_session):
        client.post('/api/points/append', json={
            'child_id': child.id, 'delta': 10, 'reason': 'chore_approved', 'submission_id': 's1'
        })

        response = client.post('/api/points/append', json={
            'child_id': child_2.id, 'delta': 30, 'reason': 'chore_approved', 'submission_id': 's1'
        })

        assert response.status_code == 409
        assert response.get_json()['details']['submission_id'] == 's1'
        assert LedgerService.sum_for(child.id) == 10
        assert LedgerService.count_for(child_2.id) == 0


class TestBalances:
    """Tests for balance and ledger history endpoints."""

    def test_get_balance(self, client, child, db_session):
        LedgerService.append(child.id, 25, REASON_CHORE_APPROVED)

        response = client.get(f'/api/points/{child.id}')
        assert response.status_code == 200
        data = response.get_json()['data']
        assert data['balance'] == 25
        assert data['cached'] is False

    def test_get_cached_balance(self, client, child, db_session):
        LedgerService.append(child.id, 25, REASON_CHORE_APPROVED)

        response = client.get(f'/api/points/{child.id}?cached=true')
        assert response.status_code == 200
        data = response.get_json()['data']
        assert data['balance'] == 25
        assert data['cached'] is True

    def test_get_balance_unknown_child(self, client, db_session):
        response = client.get('/api/points/999')
        assert response.status_code == 404

    def test_list_balances(self, client, child, child_2, db_session):
        LedgerService.append(child.id, 25, REASON_CHORE_APPROVED)

        response = client.get('/api/points/balances')
        assert response.status_code == 200
        data = response.get_json()['data']
        assert {row['child_id']: row['total_points'] for row in data} == {child.id: 25, child_2.id: 0}

    def test_history(self, client, child, db_session):
        for delta in (5, 10, 15):
            LedgerService.append(child.id, delta, REASON_CHORE_APPROVED)

        response = client.get(f'/api/points/{child.id}/history?limit=2')
        assert response.status_code == 200

        data = response.get_json()
        assert len(data['data']) == 2
        assert data['total'] == 3
        assert data['limit'] == 2
        assert data['offset'] == 0
        assert data['current_balance'] == 30
        assert data['data'][0]['delta'] == 15

    @pytest.mark.parametrize('query', ['limit=0', 'limit=2000', 'offset=-1', 'limit=abc'])
    def test_history_bad_pagination(self, client, child, query):
        response = client.get(f'/api/points/{child.id}/history?{query}')
        assert response.status_code == 400


class TestGoalEndpoints:
    """Tests for /api/goals endpoints."""

    def test_get_goal(self, client, child, goal_config, db_session):
        LedgerService.append(child.id, 40, REASON_CHORE_APPROVED)

        response = client.get(f'/api/goals/{child.id}')
        assert response.status_code == 200
        data = response.get_json()['data']
        assert data['goal_threshold'] == 100
        assert data['reward_description'] == 'ice cream'
        assert data['is_active'] is True
        assert data['balance'] == 40

    def test_get_goal_not_configured(self, client, child):
        response = client.get(f'/api/goals/{child.id}')
        assert response.status_code == 404

    def test_update_goal(self, client, child, goal_config, db_session):
        response = client.put(f'/api/goals/{child.id}', json={
            'goal_threshold': 150,
            'reward_description': 'bike ride'
        })
        assert response.status_code == 200

        data = response.get_json()
        assert data['message'] == 'Goal updated successfully'
        assert data['data']['goal_threshold'] == 150
        assert data['data']['reward_description'] == 'bike ride'

    def test_update_goal_creates_config(self, client, child, db_session):
        response = client.put(f'/api/goals/{child.id}', json={'goal_threshold': 60})
        assert response.status_code == 200
        assert response.get_json()['data']['goal_threshold'] == 60

    def test_update_goal_empty_body(self, client, child, goal_config):
        response = client.put(f'/api/goals/{child.id}', json={})
        assert response.status_code == 400

    @pytest.mark.parametrize('threshold', [0, -10, 'lots'])
    def test_update_goal_invalid_threshold(self, client, child, goal_config, threshold):
        response = client.put(f'/api/goals/{child.id}', json={'goal_threshold': threshold})
        assert response.status_code == 400

    def test_update_goal_unknown_child(self, client, db_session):
        response = client.put('/api/goals/999', json={'goal_threshold': 10})
        assert response.status_code == 404

    def test_goal_history(self, client, child, goal_config, db_session):
        LedgerService.append(child.id, 100, REASON_CHORE_APPROVED)
        LedgerService.append(child.id, 120, REASON_CHORE_APPROVED)

        response = client.get(f'/api/goals/{child.id}/history')
        assert response.status_code == 200

        data = response.get_json()
        assert data['total'] == 2
        assert [g['goal_number'] for g in data['data']] == [1, 2]
        assert [g['balance_at_achievement'] for g in data['data']] == [100, 120]

    def test_evaluate(self, client, child, goal_config, raw_credit, db_session):
        raw_credit(child.id, 130)

        response = client.post(f'/api/goals/{child.id}/evaluate')
        assert response.status_code == 200

        data = response.get_json()
        assert data['message'] == 'Goal achieved!'
        assert data['data']['achieved'] is True
        assert data['data']['balance_after'] == 30

        again = client.post(f'/api/goals/{child.id}/evaluate')
        assert again.get_json()['data']['achieved'] is False
        assert LedgerService.sum_for(child.id) == 30

    def test_evaluate_unknown_child(self, client, db_session):
        response = client.post('/api/goals/999/evaluate')
        assert response.status_code == 404


class TestEvolutionEndpoint:

    def test_get_evolution(self, client, child, goal_config, db_session):
        LedgerService.append(child.id, 110, REASON_CHORE_APPROVED)
        LedgerService.append(child.id, 5, REASON_CHORE_APPROVED)

        response = client.get(f'/api/evolution/{child.id}')
        assert response.status_code == 200

        data = response.get_json()['data']
        assert data['balance'] == 15
        assert data['completed_goals'] == 1
        assert data['current_slot_number'] == 2
        assert [s['level'] for s in data['slots']] == [5, 2, 1]

    def test_get_evolution_unknown_child(self, client, db_session):
        response = client.get('/api/evolution/999')
        assert response.status_code == 404


class TestAuthentication:
    """Bearer token checks when API_TOKEN is configured."""

    @pytest.fixture
    def token(self, app):
        app.config['API_TOKEN'] = 'test-token'
        return 'test-token'

    def test_missing_token(self, client, child, token):
        response = client.get(f'/api/points/{child.id}')
        assert response.status_code == 401
        assert response.get_json()['error'] == 'Unauthorized'

    def test_wrong_token(self, client, child, token):
        response = client.get(f'/api/points/{child.id}', headers={'Authorization': 'Bearer nope'})
        assert response.status_code == 401

    def test_valid_token(self, client, child, token, db_session):
        response = client.get(f'/api/points/{child.id}', headers={'Authorization': f'Bearer {token}'})
        assert response.status_code == 200

    def test_health_is_public(self, client, token):
        response = client.get('/health')
        assert response.status_code == 200


class TestHealth:

    def test_health(self, client, db_session):
        response = client.get('/health')
        assert response.status_code == 200

        data = response.get_json()
        assert data['status'] == 'healthy'
        assert data['database'] == 'healthy'
        assert data['jobs'] == []
