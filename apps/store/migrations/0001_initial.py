from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Document',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('collection', models.CharField(db_index=True, max_length=100)),
                ('doc_id', models.CharField(max_length=64)),
                ('data', models.JSONField(blank=True, default=dict)),
            ],
            options={
                'db_table': 'document',
                'ordering': ['id'],
                'unique_together': {('collection', 'doc_id')},
            },
        ),
    ]
