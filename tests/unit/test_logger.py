import logging

from thermal_engine.utils.logger import (
    PerformanceTracker,
    get_logger,
    initialize_logger,
    log_section,
    timed_function,
)


def test_logger_is_a_singleton():
    assert get_logger() is get_logger()


def test_file_output_and_timings(tmp_path):
    logger = initialize_logger(log_dir=str(tmp_path), console_level=logging.CRITICAL)
    try:
        @timed_function('square')
        def square(x):
            return x * x

        with log_section('squares'):
            assert square(3) == 9
        logger.log_convergence(1, 1e-3, 1e-4)

        assert logger.performance.get_stats('square')['count'] == 1
        for handler in logger.logger.handlers:
            handler.flush()
        text = open(logger.current_log_file, encoding='utf-8').read()
        assert '--- squares ---' in text
        assert 'square completed' in text
        assert 'Iteration 1' in text
    finally:
        for handler in list(logger.logger.handlers):
            handler.close()
        initialize_logger()


def test_performance_tracker_stats():
    tracker = PerformanceTracker()
    tracker.record_timing('solve', 1.0)
    tracker.record_timing('solve', 3.0)
    stats = tracker.get_stats('solve')
    assert stats['count'] == 2
    assert stats['mean'] == 2.0
    assert tracker.get_stats('missing')['count'] == 0


def _warn_from_caller(logger):
    logger.warning('battery warm')
    logger.log_progress(1, 2, 'sweep')


def test_records_point_at_the_calling_function(tmp_path):
    logger = initialize_logger(log_dir=str(tmp_path), console_level=logging.CRITICAL)
    try:
        _warn_from_caller(logger)
        for handler in logger.logger.handlers:
            handler.flush()
        lines = open(logger.current_log_file, encoding='utf-8').read().splitlines()
        warned = next(line for line in lines if 'battery warm' in line)
        progress = next(line for line in lines if 'Progress: 1/2' in line)
        assert '[test_logger._warn_from_caller:' in warned
        assert '[test_logger._warn_from_caller:' in progress
        assert 'logger.warning' not in warned
    finally:
        for handler in list(logger.logger.handlers):
            handler.close()
        initialize_logger()
