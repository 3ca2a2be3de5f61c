"""Initial quiz schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # Create quizzes table
    op.create_table(
        'quizzes',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('category', sa.String(100), nullable=False),
        sa.Column('difficulty', sa.String(20), nullable=False),
        sa.Column('time_limit', sa.Integer(), nullable=True),
        sa.Column('passing_score', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('start_date', sa.DateTime(), nullable=True),
        sa.Column('end_date', sa.DateTime(), nullable=True),
        sa.Column('is_randomized', sa.Boolean(), nullable=False),
        sa.Column('show_answers_after', sa.Boolean(), nullable=False),
        sa.Column('allow_retake', sa.Boolean(), nullable=False),
        sa.Column('max_attempts', sa.Integer(), nullable=True),
        sa.Column('created_by', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_quizzes')
    )
    op.create_index('ix_quizzes_category', 'quizzes', ['category'])
    op.create_index('ix_quizzes_difficulty', 'quizzes', ['difficulty'])

    # Create quiz_questions table
    op.create_table(
        'quiz_questions',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('quiz_id', sa.String(36), nullable=False),
        sa.Column('question_text', sa.Text(), nullable=False),
        sa.Column('question_type', sa.String(30), nullable=False),
        sa.Column('options', sa.JSON(), nullable=True),
        sa.Column('correct_answer', sa.JSON(), nullable=True),
        sa.Column('sub_statements', sa.JSON(), nullable=True),
        sa.Column('points', sa.Integer(), nullable=False),
        sa.Column('order', sa.Integer(), nullable=False),
        sa.Column('explanation', sa.Text(), nullable=True),
        sa.Column('is_required', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['quiz_id'], ['quizzes.id'], ondelete='CASCADE',
                                name='fk_quiz_questions_quiz_id_quizzes'),
        sa.PrimaryKeyConstraint('id', name='pk_quiz_questions'),
        sa.UniqueConstraint('quiz_id', 'order', name='uq_quiz_questions_quiz_id_order')
    )
    op.create_index('ix_quiz_questions_quiz_id', 'quiz_questions', ['quiz_id'])

    # Create quiz_attempts table
    op.create_table(
        'quiz_attempts',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('quiz_id', sa.String(36), nullable=False),
        sa.Column('student_id', sa.String(255), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('time_taken', sa.Integer(), nullable=False),
        sa.Column('score', sa.Float(), nullable=False),
        sa.Column('total_score', sa.Float(), nullable=False),
        sa.Column('percentage', sa.Float(), nullable=False),
        sa.Column('is_passed', sa.Boolean(), nullable=False),
        sa.Column('answers', sa.JSON(), nullable=False),
        sa.Column('manual_scores', sa.JSON(), nullable=False),
        sa.Column('feedback', sa.Text(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['quiz_id'], ['quizzes.id'], name='fk_quiz_attempts_quiz_id_quizzes'),
        sa.PrimaryKeyConstraint('id', name='pk_quiz_attempts')
    )
    op.create_index('ix_quiz_attempts_quiz_id', 'quiz_attempts', ['quiz_id'])
    op.create_index('ix_quiz_attempts_student_id', 'quiz_attempts', ['student_id'])
    op.create_index('ix_quiz_attempts_status', 'quiz_attempts', ['status'])
    op.create_index('idx_quiz_attempts_quiz_student', 'quiz_attempts', ['quiz_id', 'student_id'])


def downgrade():
    op.drop_table('quiz_attempts')
    op.drop_table('quiz_questions')
    op.drop_table('quizzes')
