import pytest

from escrutinio.enums.enums import EstadoActa
from escrutinio.services.consensus import (
    ConsensusInvariantError,
    decide_status,
    evaluate_submission,
    find_consensus,
    values_match,
)

A = (100, 80, 60, 10, 5, 3, 2)
B = (101, 80, 60, 10, 5, 3, 2)
C = (100, 81, 60, 10, 5, 3, 2)


def test_values_match_is_exact():
    assert values_match(A, list(A))
    assert not values_match(A, B)


def test_values_match_rejects_wrong_length():
    with pytest.raises(ConsensusInvariantError):
        values_match(A, A[:6])


def test_confirm_is_a_match():
    evaluacion = evaluate_submission(A, confirm=True)
    assert evaluacion.coincide
    assert evaluacion.valores == A


def test_typed_identical_values_count_as_confirmation():
    evaluacion = evaluate_submission(A, confirm=False, corrected=list(A))
    assert evaluacion.coincide
    assert not evaluacion.es_correccion


def test_different_values_are_a_correction():
    evaluacion = evaluate_submission(A, confirm=False, corrected=B)
    assert evaluacion.es_correccion
    assert evaluacion.valores == B


def test_no_stored_values_is_an_invariant_violation():
    with pytest.raises(ConsensusInvariantError):
        evaluate_submission(None, confirm=True)


def test_correction_without_values_is_an_invariant_violation():
    with pytest.raises(ConsensusInvariantError):
        evaluate_submission(A, confirm=False, corrected=None)


@pytest.mark.parametrize("total, matched, esperado", [
    (0, 0, EstadoActa.en_validacion),
    (1, 1, EstadoActa.en_validacion),
    (2, 2, EstadoActa.en_validacion),
    (3, 2, EstadoActa.validada),
    (3, 3, EstadoActa.validada),
    (3, 1, EstadoActa.con_discrepancia),
    (3, 0, EstadoActa.con_discrepancia),
])
def test_decide_status(total, matched, esperado):
    assert decide_status(total, matched) == esperado


def test_find_consensus_two_of_three():
    consenso = find_consensus([("r1", A), ("r2", B), ("r3", A)])
    assert consenso.valores == A
    assert consenso.coincidentes == ["r1", "r3"]
    assert consenso.discrepantes == ["r2"]


def test_find_consensus_pairwise_distinct_has_no_winner():
    consenso = find_consensus([("r1", A), ("r2", B), ("r3", C)])
    assert consenso.valores is None
    assert consenso.discrepantes == []


def test_find_consensus_empty():
    assert find_consensus([]).valores is None
